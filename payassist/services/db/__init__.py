from payassist.services.db.session import Base, create_engine, create_session_factory  # noqa: F401
