"""Test helpers: in-memory collection and request/response utilities."""

import copy
from types import SimpleNamespace
from typing import Any

from bson import ObjectId
from pymongo.errors import OperationFailure
from starlette.requests import Request
from starlette.responses import Response

AUTH_KEY = b"a" * 32
ENC_KEY = b"e" * 16
SESSION_NAME = "test-session"


class FakeCollection:
    """In-memory stand-in for the parts of AsyncCollection the store uses."""

    def __init__(self, name: str = "sessions_test") -> None:
        self.name = name
        self.documents: dict[ObjectId, dict[str, Any]] = {}
        self.indexes: dict[str, dict[str, Any]] = {"_id_": {"key": [("_id", 1)], "v": 2}}
        self.create_index_calls = 0
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise OperationFailure("simulated failure")

    async def index_information(self) -> dict[str, dict[str, Any]]:
        self._check()
        return copy.deepcopy(self.indexes)

    async def create_index(self, keys: list[tuple[str, int]], name: str, **kwargs: Any) -> str:
        self._check()
        self.create_index_calls += 1
        self.indexes[name] = {"key": list(keys), **kwargs}
        return name

    def _matches(self, document: dict[str, Any], query: dict[str, Any]) -> bool:
        for field, condition in query.items():
            value = document.get(field)
            if isinstance(condition, dict) and "$gt" in condition:
                if value is None or not value > condition["$gt"]:
                    return False
            elif value != condition:
                return False
        return True

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        self._check()
        for document in self.documents.values():
            if self._matches(document, query):
                return copy.deepcopy(document)
        return None

    async def insert_one(self, document: dict[str, Any]) -> SimpleNamespace:
        self._check()
        document = copy.deepcopy(document)
        document.setdefault("_id", ObjectId())
        self.documents[document["_id"]] = document
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    async def update_one(self, query: dict[str, Any], update: dict[str, Any]) -> SimpleNamespace:
        self._check()
        for document in self.documents.values():
            if self._matches(document, query):
                document.update(copy.deepcopy(update["$set"]))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def delete_one(self, query: dict[str, Any]) -> SimpleNamespace:
        self._check()
        for key, document in list(self.documents.items()):
            if self._matches(document, query):
                del self.documents[key]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


def make_request(cookies: dict[str, str] | None = None) -> Request:
    """Build a Starlette request carrying the given cookies."""
    headers = []
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "query_string": b"", "headers": headers})


def set_cookies(response: Response) -> list[str]:
    return response.headers.getlist("set-cookie")


def cookie_value(response: Response, name: str = SESSION_NAME) -> str:
    """Return the value of the single Set-Cookie header for ``name``."""
    headers = [h for h in set_cookies(response) if h.startswith(f"{name}=")]
    assert len(headers) == 1
    return headers[0].split(";", 1)[0].split("=", 1)[1]
