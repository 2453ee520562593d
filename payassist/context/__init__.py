from payassist.context.session_manager import SessionManager, get_session_manager  # noqa: F401
