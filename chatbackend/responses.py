"""Successful responses and their JSON bodies."""

from __future__ import annotations

import dataclasses
import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any, Iterable


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass(frozen=True)
class Success:
    """A successful response: a status, an optional body and cookies to set."""

    status: HTTPStatus
    data: Any = None
    message: str | None = None
    has_body: bool = True
    cookies: tuple[Any, ...] = ()

    @classmethod
    def ok(cls, data: Any) -> Success:
        return cls(HTTPStatus.OK, data)

    @classmethod
    def created(cls, data: Any) -> Success:
        return cls(HTTPStatus.CREATED, data)

    @classmethod
    def no_content(cls) -> Success:
        return cls(HTTPStatus.NO_CONTENT, has_body=False)

    def with_message(self, message: str) -> Success:
        """Attach a message; a response without a body stays without one."""
        if not self.has_body:
            return self
        return dataclasses.replace(self, message=message)

    def with_cookies(self, cookies: Iterable[Any]) -> Success:
        return dataclasses.replace(self, cookies=tuple(cookies))

    def to_body(self) -> dict[str, Any] | None:
        """The JSON body, leaving out ``data`` when there is none."""
        if not self.has_body:
            return None
        body: dict[str, Any] = {}
        if self.data is not None:
            body["data"] = _jsonable(self.data)
        body["message"] = self.message
        return body