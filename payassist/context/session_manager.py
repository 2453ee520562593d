"""
Session Management
Per-thread conversation state: message history, cached identity and
contacts, the active transfer workflow and the turn counter.

Everything stored in a session is JSON-compatible so the same session dict
works with the in-memory store and with RedisSessionStorage.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta
import json
import logging
import uuid

try:
    import redis  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    redis = None  # type: ignore

from payassist import config
from payassist.schemas.messages import Message
from payassist.services.models import Contact, User
from payassist.workflows.state import TransferWorkflow

logger = logging.getLogger("payassist.orchestrator")


def new_thread_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


class SessionManager:
    """
    Manages conversation threads.

    Notes:
    - ``storage`` is any dict-like object (a plain dict by default).
    - Sessions idle for longer than the timeout are dropped on access.
    - Resetting a thread issues a new thread id; the old thread is left in
      storage untouched.
    """

    def __init__(self, session_timeout_minutes: int = 30, storage: Optional[Any] = None):
        self.sessions: Any = storage if storage is not None else {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    # ------------------------------------------------------------------
    # Core helpers
    # ------------------------------------------------------------------
    def _init_session(self, thread_id: str) -> Dict[str, Any]:
        now = datetime.now()
        session: Dict[str, Any] = {
            "thread_id": thread_id,
            "user_id": None,
            "token": None,
            # cached identity / contacts, primed once at session start
            "user": None,
            "contacts": None,
            "created_at": now,
            "last_activity": now,
            "history": [],
            "workflow": None,
            "turn_seq": 0,
        }
        self.save_session(thread_id, session)
        return session

    def create_session(self) -> str:
        thread_id = new_thread_id()
        self._init_session(thread_id)
        return thread_id

    def ensure_session(self, thread_id: str) -> Dict[str, Any]:
        """
        Return the session for ``thread_id``, creating it if missing or expired.
        """
        session = self.get_session(thread_id)
        if session is None:
            session = self._init_session(thread_id)
        return session

    def get_session(self, thread_id: str) -> Optional[Dict[str, Any]]:
        """
        Get session data, or None if not found/expired.
        """
        session = self.sessions.get(thread_id)
        if session:
            now = datetime.now()
            if now - session.get("last_activity", now) > self.session_timeout:
                logger.info("Session %s expired", thread_id)
                del self.sessions[thread_id]
                return None
            session["last_activity"] = now
            self.save_session(thread_id, session)
        return session

    def save_session(self, thread_id: str, session: Dict[str, Any]) -> None:
        self.sessions[thread_id] = session

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    def set_identity(self, thread_id: str, token: str, user: User, contacts: Optional[List[Contact]]) -> None:
        session = self.ensure_session(thread_id)
        session["token"] = token
        session["user_id"] = user.user_id
        session["user"] = user.model_dump(mode="json")
        session["contacts"] = [c.model_dump(mode="json") for c in contacts] if contacts is not None else None
        self.save_session(thread_id, session)

    def get_user(self, thread_id: str) -> Optional[User]:
        session = self.get_session(thread_id)
        if not session or not session.get("user"):
            return None
        return User.model_validate(session["user"])

    def get_contacts(self, thread_id: str) -> Optional[List[Contact]]:
        session = self.get_session(thread_id)
        if not session or session.get("contacts") is None:
            return None
        return [Contact.model_validate(c) for c in session["contacts"]]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def append_message(self, thread_id: str, message: Message) -> None:
        session = self.ensure_session(thread_id)
        session.setdefault("history", []).append(message.model_dump(mode="json"))
        self.save_session(thread_id, session)

    def get_history(self, thread_id: str) -> List[Message]:
        session = self.get_session(thread_id)
        if not session:
            return []
        return [Message.model_validate(m) for m in session.get("history", [])]

    def next_turn(self, thread_id: str) -> int:
        session = self.ensure_session(thread_id)
        session["turn_seq"] = int(session.get("turn_seq", 0)) + 1
        self.save_session(thread_id, session)
        return session["turn_seq"]

    def reset_thread(self, thread_id: str) -> str:
        """
        Start a fresh thread for the same caller. Identity and contacts carry
        over; history and workflow do not.
        """
        old = self.get_session(thread_id)
        new_id = new_thread_id()
        session = self._init_session(new_id)
        if old:
            for key in ("user_id", "token", "user", "contacts"):
                session[key] = old.get(key)
            self.save_session(new_id, session)
        logger.info("Thread %s reset -> %s", thread_id, new_id)
        return new_id

    # ------------------------------------------------------------------
    # Transfer workflow
    # ------------------------------------------------------------------
    def get_workflow(self, thread_id: str) -> Optional[TransferWorkflow]:
        session = self.get_session(thread_id)
        if not session or not session.get("workflow"):
            return None
        return TransferWorkflow.model_validate(session["workflow"])

    def save_workflow(self, thread_id: str, workflow: TransferWorkflow) -> None:
        session = self.ensure_session(thread_id)
        session["workflow"] = workflow.model_dump(mode="json")
        self.save_session(thread_id, session)

    def clear_workflow(self, thread_id: str) -> None:
        session = self.get_session(thread_id)
        if session:
            session["workflow"] = None
            self.save_session(thread_id, session)


class RedisSessionStorage:
    """
    Minimal dict-like storage that keeps session payloads in Redis as JSON.
    Each set operation refreshes the TTL so idle sessions eventually expire.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        prefix: str = "payassist:session",
        ttl_seconds: Optional[int] = None,
        client: Optional[Any] = None,
    ) -> None:
        if client is None:
            if redis is None:  # pragma: no cover
                raise RuntimeError(
                    "redis package is not installed. Install `redis` or set SESSION_BACKEND=memory."
                )
            client = redis.Redis.from_url(redis_url, decode_responses=True)
        self.client = client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, thread_id: str) -> str:
        return f"{self.prefix}:{thread_id}"

    def _serialize(self, session: Dict[str, Any]) -> str:
        data = dict(session)
        for key in ("created_at", "last_activity"):
            val = data.get(key)
            if isinstance(val, datetime):
                data[key] = val.isoformat()
        return json.dumps(data)

    def _deserialize(self, payload: str) -> Dict[str, Any]:
        data = json.loads(payload)
        for key in ("created_at", "last_activity"):
            val = data.get(key)
            if isinstance(val, str):
                try:
                    data[key] = datetime.fromisoformat(val)
                except ValueError:
                    logger.warning("Bad %s timestamp in session payload: %r", key, val)
        return data

    def get(self, thread_id: str, default: Optional[Any] = None) -> Optional[Dict[str, Any]]:
        raw = self.client.get(self._key(thread_id))
        if raw is None:
            return default
        return self._deserialize(raw)

    def __getitem__(self, thread_id: str) -> Dict[str, Any]:
        session = self.get(thread_id)
        if session is None:
            raise KeyError(thread_id)
        return session

    def __setitem__(self, thread_id: str, session: Dict[str, Any]) -> None:
        payload = self._serialize(session)
        if self.ttl_seconds and self.ttl_seconds > 0:
            self.client.setex(self._key(thread_id), self.ttl_seconds, payload)
        else:
            self.client.set(self._key(thread_id), payload)

    def __delitem__(self, thread_id: str) -> None:
        self.client.delete(self._key(thread_id))


_SESSION_MANAGER_SINGLETON: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """
    Build (and cache) the global SessionManager instance.
    SESSION_BACKEND selects the storage.
    """
    global _SESSION_MANAGER_SINGLETON
    if _SESSION_MANAGER_SINGLETON is not None:
        return _SESSION_MANAGER_SINGLETON

    timeout = config.SESSION_TIMEOUT_MINUTES
    storage = None
    ttl_seconds = int(timedelta(minutes=timeout).total_seconds())

    if config.SESSION_BACKEND == "redis":
        if not config.SESSION_REDIS_URL:
            raise RuntimeError("SESSION_BACKEND=redis requires SESSION_REDIS_URL or REDIS_URL to be set.")
        storage = RedisSessionStorage(
            redis_url=config.SESSION_REDIS_URL,
            prefix=config.SESSION_REDIS_PREFIX,
            ttl_seconds=ttl_seconds,
        )
    elif config.SESSION_BACKEND != "memory":
        raise RuntimeError(f"Unknown SESSION_BACKEND '{config.SESSION_BACKEND}'. Use 'memory' or 'redis'.")

    _SESSION_MANAGER_SINGLETON = SessionManager(session_timeout_minutes=timeout, storage=storage)
    return _SESSION_MANAGER_SINGLETON
