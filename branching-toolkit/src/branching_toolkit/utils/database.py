from uuid import uuid4


def generate_uid(prefix: str = "id") -> str:
    """Return a short unique id such as 'msg_1a2b3c4d'."""
    return f"{prefix}_{uuid4().hex[:8]}"
