"""Authenticated (and optionally encrypted) cookie value codecs.

A cookie value is built by an itsdangerous ``URLSafeTimedSerializer``:

1. the value is serialised to JSON,
2. if a block key is configured, the JSON is encrypted with AES-CTR under a
   random IV which is prepended to the ciphertext,
3. the result is base64url-encoded and signed with a timestamped HMAC
   salted with the cookie name.

Decoding reverses the steps and rejects values with a bad signature, values
signed for another cookie name, and values older than the codec's max age.
Codecs are kept in an ordered list so keys can be rotated: new values are
always encoded with the first codec, while decoding tries every codec.
"""

import hashlib
import json
import os
from collections.abc import Sequence
from typing import Any, Protocol

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from itsdangerous import BadData, BadSignature, SignatureExpired, URLSafeTimedSerializer

from mongosession.errors import ConfigurationError, CookieDecodeError, SessionValueError

MAX_COOKIE_LENGTH = 4096
BLOCK_KEY_LENGTHS = (16, 24, 32)  # AES-128, AES-192, AES-256
_IV_LENGTH = 16


class CookieCodec(Protocol):
    def encode(self, name: str, value: Any) -> str: ...

    def decode(self, name: str, value: str) -> Any: ...


class AESJSONSerializer:
    """JSON serializer for itsdangerous that encrypts the payload when a block key is set."""

    def __init__(self, block_key: bytes | None = None) -> None:
        self._block_key = block_key

    def dumps(self, obj: Any) -> bytes:
        payload = json.dumps(obj, separators=(",", ":")).encode()
        if self._block_key is None:
            return payload
        iv = os.urandom(_IV_LENGTH)
        encryptor = Cipher(algorithms.AES(self._block_key), modes.CTR(iv)).encryptor()
        return iv + encryptor.update(payload) + encryptor.finalize()

    def loads(self, data: bytes) -> Any:
        if self._block_key is not None:
            if len(data) <= _IV_LENGTH:
                raise ValueError("Payload is too short to hold an IV")
            iv, ciphertext = data[:_IV_LENGTH], data[_IV_LENGTH:]
            decryptor = Cipher(algorithms.AES(self._block_key), modes.CTR(iv)).decryptor()
            data = decryptor.update(ciphertext) + decryptor.finalize()
        return json.loads(data)


class SecureCookieCodec:
    """Cookie codec that signs values and encrypts them when a block key is set."""

    def __init__(self, hash_key: bytes, block_key: bytes | None = None, max_age: int = 86400 * 30) -> None:
        if not hash_key:
            raise ConfigurationError("Hash key is required")
        if block_key is not None and len(block_key) not in BLOCK_KEY_LENGTHS:
            raise ConfigurationError(f"Block key must be 16, 24 or 32 bytes, got {len(block_key)}")
        self._hash_key = hash_key
        self._payload_serializer = AESJSONSerializer(block_key)
        self.max_age = max_age

    def _serializer(self, name: str) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(
            self._hash_key,
            salt=name,
            serializer=self._payload_serializer,
            signer_kwargs={"digest_method": hashlib.sha256},
        )

    def encode(self, name: str, value: Any) -> str:
        encoded = self._serializer(name).dumps(value)
        if len(encoded) > MAX_COOKIE_LENGTH:
            raise SessionValueError(f"Encoded value is too long ({len(encoded)} bytes)")
        return encoded

    def decode(self, name: str, value: str) -> Any:
        if len(value) > MAX_COOKIE_LENGTH:
            raise CookieDecodeError("Cookie value is too long")
        max_age = self.max_age if self.max_age > 0 else None
        try:
            return self._serializer(name).loads(value, max_age=max_age)
        except SignatureExpired as exc:
            raise CookieDecodeError("Cookie has expired") from exc
        except BadSignature as exc:
            raise CookieDecodeError("Cookie signature is invalid") from exc
        except BadData as exc:
            raise CookieDecodeError("Cookie value could not be deserialised") from exc


def codecs_from_pairs(*keys: bytes | None, max_age: int = 86400 * 30) -> list[SecureCookieCodec]:
    """Build codecs from ``hash_key, block_key, hash_key, block_key, ...``.

    The block key may be ``None`` or omitted in the last pair.
    """
    if not keys:
        raise ConfigurationError("At least one hash key is required")
    codecs = []
    for i in range(0, len(keys), 2):
        hash_key = keys[i]
        block_key = keys[i + 1] if i + 1 < len(keys) else None
        if hash_key is None:
            raise ConfigurationError(f"Hash key is missing in key pair {i // 2}")
        codecs.append(SecureCookieCodec(hash_key, block_key or None, max_age=max_age))
    return codecs


def encode_multi(name: str, value: Any, codecs: Sequence[CookieCodec]) -> str:
    if not codecs:
        raise ConfigurationError("No codecs configured")
    return codecs[0].encode(name, value)


def decode_multi(name: str, value: str, codecs: Sequence[CookieCodec]) -> Any:
    """Decode with the first codec that accepts the value."""
    if not codecs:
        raise ConfigurationError("No codecs configured")
    errors: list[Exception] = []
    for codec in codecs:
        try:
            return codec.decode(name, value)
        except CookieDecodeError as exc:
            errors.append(exc)
    raise CookieDecodeError("; ".join(str(e) for e in errors), errors=errors)
