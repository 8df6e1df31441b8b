import uuid
from datetime import datetime, timezone


def generate_id() -> str:
    return str(uuid.uuid4())[:8]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
