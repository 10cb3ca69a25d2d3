"""Audit types shared by the registry, the runner and the report."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import httpx

from gqlhttp_audit.assertions import AuditFailure


class RequirementLevel(StrEnum):
    MUST = "MUST"
    SHOULD = "SHOULD"
    MAY = "MAY"


class AuditStatus(StrEnum):
    OK = "ok"
    WARN = "warn"
    ERROR = "error"


class Fetch(Protocol):
    """Issues one HTTP request against the audited server."""

    def __call__(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        content: str | bytes | None = None,
    ) -> Awaitable[httpx.Response]: ...


@dataclass(frozen=True)
class AuditResult:
    id: str
    name: str
    level: RequirementLevel
    status: AuditStatus
    reason: str | None = None
    response: httpx.Response | None = None

    @property
    def ok(self) -> bool:
        return self.status == AuditStatus.OK


@dataclass(frozen=True)
class Audit:
    """One independent conformance check.

    ``id`` is a stable 4 character identifier; together with ``level``
    and ``description`` it is part of the published audit contract.
    """

    id: str
    level: RequirementLevel
    description: str
    fn: Callable[[], Awaitable[None]]

    @property
    def name(self) -> str:
        return f"{self.level.value} {self.description}"

    async def run(self) -> AuditResult:
        """Run the check, turning assertion failures into a verdict.

        Raises:
            Exception: Anything other than an ``AuditFailure`` (network
                errors, bugs in the check) is fatal and propagates.
        """
        try:
            await self.fn()
        except AuditFailure as failure:
            status = AuditStatus.ERROR if self.level == RequirementLevel.MUST else AuditStatus.WARN
            return AuditResult(
                id=self.id,
                name=self.name,
                level=self.level,
                status=status,
                reason=failure.reason,
                response=failure.response,
            )
        return AuditResult(id=self.id, name=self.name, level=self.level, status=AuditStatus.OK)


@dataclass(frozen=True)
class ServerAuditOptions:
    """Target of a server audit.

    Attributes:
        url: The GraphQL over HTTP endpoint.
        fetch: Request function; defaults to a short-lived
            ``httpx.AsyncClient`` per request.
    """

    url: str
    fetch: Fetch | None = None
