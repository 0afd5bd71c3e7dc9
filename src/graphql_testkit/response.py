"""Decoded GraphQL responses with path-based field lookup."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from graphql_testkit.exceptions import fail

_PATH_TOKEN = re.compile(
    r"""
    \.?(?P<name>[A-Za-z_][A-Za-z0-9_]*)   # .field or field
    | \[(?P<index>-?\d+)\]                # [0]
    | \[['"](?P<key>[^'"]+)['"]\]         # ['field']
    """,
    re.VERBOSE,
)

_MISSING = object()


def parse_path(path: str) -> list[str | int]:
    """
    Split a JSONPath-like expression into keys and list indexes.

    Accepts ``$.data.items[0].name``, ``data.items[0].name`` and
    ``$['data']['items'][0]``.

    Raises:
        ValueError: If the expression contains anything else.
    """
    expression = path.strip()
    if expression.startswith("$"):
        expression = expression[1:]
    parts: list[str | int] = []
    position = 0
    while position < len(expression):
        match = _PATH_TOKEN.match(expression, position)
        if match is None or match.end() == position:
            raise ValueError(f"Invalid response path '{path}' at position {position}.")
        if match.group("name") is not None:
            parts.append(match.group("name"))
        elif match.group("index") is not None:
            parts.append(int(match.group("index")))
        else:
            parts.append(match.group("key"))
        position = match.end()
    return parts


def _resolve(document: Any, parts: list[str | int]) -> Any:
    current = document
    for part in parts:
        if isinstance(part, int):
            if not isinstance(current, list):
                return _MISSING
            try:
                current = current[part]
            except IndexError:
                return _MISSING
        else:
            if not isinstance(current, Mapping) or part not in current:
                return _MISSING
            current = current[part]
    return current


class GraphQLResponse:
    """
    Immutable view of a GraphQL response body.

    Subscription frames are wrapped with status ``200``; HTTP responses keep
    their real status code.
    """

    __slots__ = ("_payload", "_status_code")

    def __init__(self, payload: Mapping[str, Any], status_code: int = 200) -> None:
        # Round-tripping through JSON detaches the copy from the caller's objects.
        object.__setattr__(self, "_payload", json.loads(json.dumps(payload)))
        object.__setattr__(self, "_status_code", status_code)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("GraphQLResponse is immutable.")

    @classmethod
    def from_text(cls, text: str, status_code: int = 200) -> "GraphQLResponse":
        """
        Build a response from a raw JSON body, failing the test if it cannot be decoded.
        """
        try:
            payload = json.loads(text)
        except (TypeError, ValueError) as error:
            fail(
                "Exception while parsing server response. Response is not a valid GraphQL response.",
                error,
            )
        if not isinstance(payload, dict):
            fail(f"GraphQL responses must be JSON objects, got {type(payload).__name__}.")
        return cls(payload, status_code)

    @property
    def raw(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._payload))

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def is_ok(self) -> bool:
        return 200 <= self._status_code < 300

    @property
    def errors(self) -> list[dict[str, Any]]:
        errors = self._payload.get("errors")
        return list(errors) if isinstance(errors, list) else []

    def get(self, path: str) -> Any:
        """
        Return the value at ``path``.

        Parameters:
            path (str): JSONPath-like expression, e.g. ``"$.data.countdown"``.

        Returns:
            Any: The value found at the path (may be ``None`` if the field is null).

        Raises:
            GraphQLTestFailure: If the path is malformed or does not resolve.
        """
        value = _resolve(self._payload, self._parse(path))
        if value is _MISSING:
            fail(f"Path '{path}' not found in GraphQL response: {self.to_json()}")
        return value

    def get_or_none(self, path: str) -> Any:
        """Return the value at ``path``, or ``None`` when it does not resolve."""
        value = _resolve(self._payload, self._parse(path))
        return None if value is _MISSING else value

    def assert_that_field(self, path: str) -> Any:
        return self.get(path)

    def assert_that_no_errors_are_present(self) -> "GraphQLResponse":
        if not self.is_ok:
            fail(f"Expected a successful response, but status was {self._status_code}.")
        if self.errors:
            messages = [str(error.get("message", error)) for error in self.errors]
            fail(f"Expected no GraphQL errors, but received: {messages}")
        return self

    @staticmethod
    def _parse(path: str) -> list[str | int]:
        try:
            return parse_path(path)
        except ValueError as error:
            fail(str(error), error)

    def to_json(self) -> str:
        return json.dumps(self._payload, sort_keys=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphQLResponse):
            return NotImplemented
        return (
            self._status_code == other._status_code
            and self._payload == other._payload
        )

    def __hash__(self) -> int:
        return hash((self._status_code, self.to_json()))

    def __repr__(self) -> str:
        return f"GraphQLResponse(status_code={self._status_code}, payload={self.to_json()})"
