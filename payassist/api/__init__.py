from payassist.api.app import create_app  # noqa: F401
