"""MongoDB session store for Starlette and FastAPI applications."""

from mongosession.codec import CookieCodec, SecureCookieCodec, codecs_from_pairs, decode_multi, encode_multi
from mongosession.config import StoreConfig
from mongosession.errors import (
    ConfigurationError,
    CookieDecodeError,
    DatabaseError,
    InvalidSessionIdError,
    SessionError,
    SessionNotFoundError,
    SessionValueError,
    StoreSetupError,
)
from mongosession.logging import setup_logging
from mongosession.models import Session, SessionOptions
from mongosession.registry import SessionRegistry
from mongosession.store import MongoStore

__all__ = [
    "ConfigurationError",
    "CookieCodec",
    "CookieDecodeError",
    "DatabaseError",
    "InvalidSessionIdError",
    "MongoStore",
    "SecureCookieCodec",
    "Session",
    "SessionError",
    "SessionNotFoundError",
    "SessionOptions",
    "SessionRegistry",
    "SessionValueError",
    "StoreConfig",
    "StoreSetupError",
    "codecs_from_pairs",
    "decode_multi",
    "encode_multi",
    "setup_logging",
]
