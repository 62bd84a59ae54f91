"""MongoDB-backed session store.

Session values live only in MongoDB. The browser receives a cookie holding
the signed (and optionally encrypted) session id, never the values.
Expired records are reaped by a TTL index on ``modified_at``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Self

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError
from starlette.requests import Request
from starlette.responses import Response

from mongosession.codec import CookieCodec, SecureCookieCodec, codecs_from_pairs, decode_multi, encode_multi
from mongosession.config import StoreConfig
from mongosession.errors import (
    CookieDecodeError,
    DatabaseError,
    InvalidSessionIdError,
    SessionError,
    SessionNotFoundError,
    StoreSetupError,
)
from mongosession.models import Session, SessionOptions, SessionRecord, encode_values
from mongosession.registry import SessionRegistry
from mongosession.utils import EPOCH, expires_at, now

logger = structlog.get_logger(__name__)

TTL_FIELD = "modified_at"
TTL_INDEX_NAME = "modified_at_1"


class MongoStore:
    """Session store keeping session values in a MongoDB collection.

    Keys are given as a flat sequence of pairs to allow key rotation:
    ``[auth_key, enc_key, old_auth_key, old_enc_key, ...]``. The encryption key
    may be ``None`` (signing only); when set it must be 16, 24 or 32 bytes to
    select AES-128, AES-192 or AES-256. An authentication key of 32 or 64
    bytes is recommended. Without explicit keys the fallback keys from
    ``StoreConfig`` are used.

    Call ``on_start()`` (or build the store with ``create()``) before use so
    the TTL index exists.
    """

    def __init__(
        self,
        collection: AsyncCollection[dict[str, Any]],
        max_age: int | None = None,
        key_pairs: Sequence[bytes | None] = (),
        config: StoreConfig | None = None,
    ) -> None:
        config = config or StoreConfig()
        self._collection = collection
        self.options = SessionOptions(
            path=config.path,
            domain=config.domain,
            max_age=max_age if max_age is not None else config.max_age,
            secure=config.secure,
            http_only=config.http_only,
            same_site=config.same_site,
        )
        self.codecs: list[CookieCodec] = list(codecs_from_pairs(*config.resolve_key_pairs(list(key_pairs))))
        self.set_max_age(self.options.max_age)

    @classmethod
    async def create(
        cls,
        collection: AsyncCollection[dict[str, Any]],
        max_age: int | None = None,
        key_pairs: Sequence[bytes | None] = (),
        config: StoreConfig | None = None,
    ) -> Self:
        """Create a store and ensure its TTL index exists."""
        store = cls(collection, max_age, key_pairs, config)
        await store.on_start()
        return store

    @property
    def collection(self) -> AsyncCollection[dict[str, Any]]:
        return self._collection

    async def on_start(self) -> None:
        """Ensure the TTL index, failing hard when MongoDB refuses."""
        try:
            await self.ensure_ttl_index()
        except PyMongoError as exc:
            logger.exception("ttl_index_failed", collection=self._collection.name)
            raise StoreSetupError(f"Failed to ensure TTL index on {self._collection.name}: {exc}") from exc

    def set_max_age(self, age: int) -> None:
        """Set the default max age for new sessions and for cookie verification.

        Individual sessions are deleted on save by setting their
        ``options.max_age`` to zero or less.
        """
        self.options.max_age = age
        for codec in self.codecs:
            if isinstance(codec, SecureCookieCodec):
                codec.max_age = age

    async def get(self, request: Request, name: str) -> Session:
        """Return the session for ``name``, decoding it at most once per request.

        Raises a ``SessionError`` carrying a fresh session in ``session`` when
        the cookie exists but the session could not be loaded.
        """
        return await SessionRegistry.of(request).get(self, name)

    async def new(self, request: Request, name: str) -> Session:
        """Decode the session for ``name`` without registering it.

        Calling ``new()`` twice decodes and fetches the session twice, while
        ``get()`` reuses the first result for the rest of the request.
        """
        session = Session(self, name, self.options.model_copy())
        cookie = request.cookies.get(name)
        if cookie is None:
            return session

        try:
            session_id = decode_multi(name, cookie, self.codecs)
            if not isinstance(session_id, str):
                raise CookieDecodeError("Cookie does not hold a session id")
            record = await self._find(session_id)
        except SessionError as exc:
            logger.debug("session_load_failed", name=name, error=str(exc))
            exc.session = session
            raise

        session.id = session_id
        session.values = record.values
        session.is_new = False
        return session

    async def save(self, request: Request, response: Response, session: Session) -> None:
        """Persist the session and set its cookie on the response.

        The cookie is only written once the database operation has succeeded.
        A deletion request never creates a record.
        """
        if session.options.max_age <= 0 and session.id is None:
            # nothing stored for this handle, only expire the cookie
            self._set_cookie(response, session, "")
            return

        if session.name not in request.cookies or session.id is None:
            await self._insert(session)
        elif session.options.max_age <= 0:
            await self._delete(session)
        else:
            await self._update(session)

        encoded = encode_multi(session.name, session.id, self.codecs)
        self._set_cookie(response, session, encoded)

    async def ensure_ttl_index(self) -> None:
        """Create the TTL index on ``modified_at`` unless one already exists.

        MongoDB removes a record ``max_age`` seconds after its last save. The
        server sweeps expired documents about once a minute. A plain index on
        ``modified_at`` without ``expireAfterSeconds`` blocks the TTL index,
        since MongoDB allows one index per key pattern, and raises
        ``StoreSetupError``.
        """
        indexes = await self._collection.index_information()
        for name, info in indexes.items():
            keys = info.get("key", [])
            if len(keys) != 1 or keys[0][0] != TTL_FIELD:
                continue
            if "expireAfterSeconds" in info:
                logger.debug("ttl_index_exists", collection=self._collection.name, index=name)
                return
            logger.error("ttl_index_blocked", collection=self._collection.name, index=name)
            raise StoreSetupError(
                f"Index {name!r} on {self._collection.name}.{TTL_FIELD} has no expireAfterSeconds; "
                "drop it so the TTL index can be created"
            )

        await self._collection.create_index(
            [(TTL_FIELD, ASCENDING)],
            name=TTL_INDEX_NAME,
            background=True,
            sparse=True,
            expireAfterSeconds=self.options.max_age,
        )
        logger.info("ttl_index_created", collection=self._collection.name, expire_after_seconds=self.options.max_age)

    async def _find(self, session_id: str) -> SessionRecord:
        object_id = _to_object_id(session_id)
        try:
            document = await self._collection.find_one({"_id": object_id, "expires_at": {"$gt": now()}})
        except PyMongoError as exc:
            raise DatabaseError(f"Failed to load session: {exc}") from exc
        if document is None:
            raise SessionNotFoundError("Session not found or expired")
        return SessionRecord.from_mongo(document)

    async def _insert(self, session: Session) -> None:
        record = SessionRecord.from_values(session.values, self._lifetime(session))
        try:
            result = await self._collection.insert_one(record.to_mongo())
        except PyMongoError as exc:
            raise DatabaseError(f"Failed to insert session: {exc}") from exc
        session.id = str(result.inserted_id)
        logger.debug("session_inserted", name=session.name, session_id=session.id)

    async def _update(self, session: Session) -> None:
        object_id = _to_object_id(session.id)
        timestamp = now()
        update = encode_values(session.values)
        update["modified_at"] = timestamp
        update["expires_at"] = expires_at(self._lifetime(session), timestamp)
        try:
            result = await self._collection.update_one({"_id": object_id}, {"$set": update})
        except PyMongoError as exc:
            raise DatabaseError(f"Failed to update session: {exc}") from exc
        if result.matched_count == 0:
            raise SessionNotFoundError("Session to update no longer exists")

    async def _delete(self, session: Session) -> None:
        object_id = _to_object_id(session.id)
        try:
            await self._collection.delete_one({"_id": object_id})
        except PyMongoError as exc:
            raise DatabaseError(f"Failed to delete session: {exc}") from exc
        logger.debug("session_deleted", name=session.name, session_id=session.id)

    def _lifetime(self, session: Session) -> int:
        return session.options.max_age if session.options.max_age > 0 else self.options.max_age

    @staticmethod
    def _set_cookie(response: Response, session: Session, value: str) -> None:
        options = session.options
        if options.max_age > 0:
            max_age, expires = options.max_age, expires_at(options.max_age)
        else:
            max_age, expires = 0, EPOCH
        response.set_cookie(
            session.name,
            value,
            max_age=max_age,
            expires=expires,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )


def _to_object_id(session_id: str | None) -> ObjectId:
    # ObjectId(None) would mint a new id
    if session_id is None:
        raise InvalidSessionIdError("Session has no id")
    try:
        return ObjectId(session_id)
    except (InvalidId, TypeError) as exc:
        raise InvalidSessionIdError(f"Invalid session id: {session_id!r}") from exc
