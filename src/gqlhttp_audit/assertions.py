"""Assertion helpers for audits.

Every helper raises `AuditFailure` and nothing else, so the audit runner
can tell a failed requirement apart from a broken check or a network
problem.

Usage::

    res = await fetch("GET", url)
    expect(res).status_to_be(200)
    expect(res).header("content-type").to_contain("application/json")
    expect(res).body_not_to_have("data")
"""

from __future__ import annotations

import json
from typing import Any

import httpx


class AuditFailure(Exception):
    """A checked requirement does not hold for ``response``."""

    def __init__(self, reason: str, response: httpx.Response | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.response = response


def json_type_name(value: Any) -> str:
    """Name of a value's JSON type (``bool`` is checked before ``int``)."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list | tuple):
        return "array"
    return "object"


class HeaderExpectation:
    def __init__(self, response: httpx.Response, key: str) -> None:
        self.response = response
        self.key = key

    @property
    def value(self) -> str | None:
        return self.response.headers.get(self.key)

    def to_contain(self, part: str) -> None:
        if part not in (self.value or ""):
            raise AuditFailure(f"Response header {self.key} does not contain {part}", self.response)

    def not_to_contain(self, part: str) -> None:
        if part in (self.value or ""):
            raise AuditFailure(f"Response header {self.key} contains {part}", self.response)


class ResponseExpectation:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response

    def status_to_be(self, code: int) -> None:
        if self.response.status_code != code:
            raise AuditFailure(f"Response status code is not {code}", self.response)

    def status_between(self, low: int, high: int) -> None:
        if not low <= self.response.status_code <= high:
            raise AuditFailure(
                f"Response status is not between {low} and {high}", self.response
            )

    def header(self, key: str) -> HeaderExpectation:
        return HeaderExpectation(self.response, key)

    def body(self) -> dict[str, Any]:
        """The body decoded as an execution result document."""
        try:
            text = self.response.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise AuditFailure("Response body is not UTF-8 encoded", self.response) from exc
        try:
            body = json.loads(text)
        except ValueError as exc:
            raise AuditFailure("Response body is not valid JSON", self.response) from exc
        if not isinstance(body, dict):
            raise AuditFailure("Response body is not an execution result", self.response)
        return body

    def body_to_have(self, key: str) -> None:
        if key not in self.body():
            raise AuditFailure(
                f'Response body execution result does not have a property "{key}"',
                self.response,
            )

    def body_not_to_have(self, key: str) -> None:
        if key in self.body():
            raise AuditFailure(
                f'Response body execution result has a property "{key}"', self.response
            )

    def data_to_be(self, expected: Any) -> None:
        if self.body().get("data") != expected:
            raise AuditFailure(
                f'Response body execution result data is not "{expected}"', self.response
            )


def expect(response: httpx.Response) -> ResponseExpectation:
    return ResponseExpectation(response)
