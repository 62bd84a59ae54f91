"""Session handle, cookie options and the persisted session record."""

from __future__ import annotations

import pickle
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal, Self
from uuid import UUID

from bson import Binary, ObjectId
from pydantic import BaseModel, ConfigDict, Field

from mongosession.errors import SessionValueError
from mongosession.utils import expires_at, now

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

    from mongosession.store import MongoStore

# Binary subtype for values outside the storable union (user-defined range 0x80-0xFF)
BLOB_SUBTYPE = 0x80

RESERVED_FIELDS = frozenset({"_id", "created_at", "modified_at", "expires_at"})

_SCALAR_TYPES = (str, int, float, bool, datetime, UUID, bytes, ObjectId, type(None))


class SessionOptions(BaseModel):
    """Cookie attributes for a session, copied from the store defaults."""

    path: str = "/"
    domain: str | None = None
    max_age: int = 86400 * 30
    secure: bool = False
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"


class Session:
    """Request-scoped session handle.

    ``id`` is ``None`` until the session has been persisted. ``is_new`` is
    ``False`` only when the session was loaded from an existing record.
    Setting ``options.max_age`` to zero or less deletes the session on save.
    """

    def __init__(self, store: MongoStore, name: str, options: SessionOptions) -> None:
        self.id: str | None = None
        self.values: dict[str, Any] = {}
        self.is_new = True
        self.options = options
        self._store = store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def store(self) -> MongoStore:
        return self._store

    async def save(self, request: Request, response: Response) -> None:
        await self._store.save(request, response, self)

    def __repr__(self) -> str:
        return f"Session(name={self._name!r}, id={self.id!r}, is_new={self.is_new})"


class SessionRecord(BaseModel):
    """Session document as stored in MongoDB.

    Application values are kept as top-level extra fields next to the
    bookkeeping timestamps.
    """

    id: ObjectId | None = Field(default=None, alias="_id")
    created_at: datetime = Field(default_factory=now)
    modified_at: datetime = Field(default_factory=now)
    expires_at: datetime

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra="allow",
    )

    @classmethod
    def from_values(cls, values: Mapping[str, Any], max_age: int) -> Self:
        timestamp = now()
        return cls(
            created_at=timestamp,
            modified_at=timestamp,
            expires_at=expires_at(max_age, timestamp),
            **encode_values(values),
        )

    @classmethod
    def from_mongo(cls, document: Mapping[str, Any]) -> Self:
        return cls.model_validate(dict(document))

    def to_mongo(self) -> dict[str, Any]:
        """Convert the record to a MongoDB document, leaving ``_id`` to the server when unset."""
        data: dict[str, Any] = dict(self.model_extra or {})
        if self.id is not None:
            data["_id"] = self.id
        data["created_at"] = self.created_at
        data["modified_at"] = self.modified_at
        data["expires_at"] = self.expires_at
        return data

    @property
    def values(self) -> dict[str, Any]:
        return {key: decode_value(value) for key, value in (self.model_extra or {}).items()}


def check_key(key: Any) -> str:
    if not isinstance(key, str):
        raise SessionValueError(f"Session keys must be strings, got {type(key).__name__}")
    if not key or key.startswith("$") or "." in key:
        raise SessionValueError(f"Invalid session key: {key!r}")
    return key


def encode_value(value: Any) -> Any:
    """Convert a session value into something BSON can store.

    Values outside the supported union are pickled into an opaque blob.
    """
    if isinstance(value, _SCALAR_TYPES):
        return value
    if isinstance(value, Mapping):
        return {check_key(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [encode_value(v) for v in value]
    return Binary(pickle.dumps(value), BLOB_SUBTYPE)


def decode_value(value: Any) -> Any:
    if isinstance(value, Binary) and value.subtype == BLOB_SUBTYPE:
        return pickle.loads(value)  # noqa: S301
    if isinstance(value, Mapping):
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def encode_values(values: Mapping[str, Any]) -> dict[str, Any]:
    """Encode the top-level value mapping, dropping reserved bookkeeping fields."""
    return {check_key(k): encode_value(v) for k, v in values.items() if k not in RESERVED_FIELDS}
