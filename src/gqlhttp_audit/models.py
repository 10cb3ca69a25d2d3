"""Pydantic models for the JSON audit report."""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, Field

from gqlhttp_audit.common import AuditResult, AuditStatus

# ------------------------------------------------------------------ #
# Report entries
# ------------------------------------------------------------------ #


class AuditResponseModel(BaseModel):
    """The response that made an audit fail."""

    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""


class AuditResultModel(BaseModel):
    """One audit verdict."""

    id: str
    name: str
    level: str
    status: AuditStatus
    reason: str | None = None
    response: AuditResponseModel | None = None

    @classmethod
    def from_result(cls, result: AuditResult) -> AuditResultModel:
        response = None
        if result.response is not None:
            response = AuditResponseModel(
                status=result.response.status_code,
                headers=dict(result.response.headers),
                body=result.response.text,
            )
        return cls(
            id=result.id,
            name=result.name,
            level=result.level.value,
            status=result.status,
            reason=result.reason,
            response=response,
        )


# ------------------------------------------------------------------ #
# Report
# ------------------------------------------------------------------ #


class AuditSummary(BaseModel):
    """Verdict counts."""

    total: int = 0
    ok: int = 0
    warn: int = 0
    error: int = 0

    @classmethod
    def from_results(cls, results: Iterable[AuditResult]) -> AuditSummary:
        summary = cls()
        for result in results:
            summary.total += 1
            if result.status == AuditStatus.OK:
                summary.ok += 1
            elif result.status == AuditStatus.WARN:
                summary.warn += 1
            else:
                summary.error += 1
        return summary


class AuditReport(BaseModel):
    """Full report of one audit run."""

    url: str
    summary: AuditSummary
    results: list[AuditResultModel] = Field(default_factory=list)

    @classmethod
    def from_results(cls, url: str, results: list[AuditResult]) -> AuditReport:
        return cls(
            url=url,
            summary=AuditSummary.from_results(results),
            results=[AuditResultModel.from_result(r) for r in results],
        )
