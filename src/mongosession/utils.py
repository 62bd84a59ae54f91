import secrets
from datetime import UTC, datetime, timedelta

# Expires value sent with deletion cookies
EPOCH = datetime(1970, 1, 1, 0, 0, 1, tzinfo=UTC)


def now() -> datetime:
    return datetime.now(UTC)


def expires_at(max_age: int, start: datetime | None = None) -> datetime:
    return (start or now()) + timedelta(seconds=max_age)


def generate_random_key(length: int) -> bytes:
    """Return ``length`` cryptographically random bytes."""
    return secrets.token_bytes(length)
