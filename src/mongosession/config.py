from typing import Literal

import structlog
from pydantic import SecretStr
from pydantic_settings import BaseSettings

from mongosession.errors import ConfigurationError
from mongosession.utils import generate_random_key

logger = structlog.get_logger(__name__)

DEFAULT_MAX_AGE = 30 * 24 * 60 * 60  # 30 days


class StoreConfig(BaseSettings):
    """Session store configuration loaded from environment variables.

    ``auth_key`` and ``enc_key`` are the fallback cookie keys
    (``MONGOSESSION_AUTH_KEY`` / ``MONGOSESSION_ENC_KEY``), used only when no
    key pairs are passed to the store explicitly. Their UTF-8 bytes are used
    as-is, so the encryption key must be 16, 24 or 32 characters long.
    """

    database_url: str = "mongodb://localhost:27017/sessions"
    collection: str = "sessions"
    max_age: int = DEFAULT_MAX_AGE
    # Cookie defaults copied into every new session
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"
    auth_key: SecretStr | None = None
    enc_key: SecretStr | None = None
    # Generated keys are process-local: cookies from one process are rejected by every other
    allow_generated_keys: bool = False
    debug: bool = False

    model_config = {
        "env_file": [".env"],
        "env_prefix": "MONGOSESSION_",
        "extra": "ignore",
    }

    def resolve_key_pairs(self, key_pairs: list[bytes | None]) -> list[bytes | None]:
        """Return the cookie keys to use, falling back to env keys, then to generated keys."""
        if key_pairs:
            return key_pairs

        if self.auth_key is not None and self.auth_key.get_secret_value():
            enc_key = self.enc_key.get_secret_value().encode() if self.enc_key is not None else None
            return [self.auth_key.get_secret_value().encode(), enc_key or None]

        if not self.allow_generated_keys:
            raise ConfigurationError(
                "No cookie keys configured: pass key pairs, set MONGOSESSION_AUTH_KEY, "
                "or enable allow_generated_keys"
            )

        logger.warning(
            "generated_cookie_keys",
            detail="random keys are process-local; share keys explicitly when running several processes",
        )
        return [generate_random_key(32), generate_random_key(16)]
