"""GraphQL over HTTP conformance audits."""

from gqlhttp_audit.assertions import AuditFailure, expect
from gqlhttp_audit.common import (
    Audit,
    AuditResult,
    AuditStatus,
    RequirementLevel,
    ServerAuditOptions,
)
from gqlhttp_audit.models import AuditReport, AuditSummary
from gqlhttp_audit.render import render_markdown, summary_line
from gqlhttp_audit.server import audit_server, default_fetch, ensure_unique_ids, server_audits

__all__ = [
    "Audit",
    "AuditFailure",
    "AuditReport",
    "AuditResult",
    "AuditStatus",
    "AuditSummary",
    "RequirementLevel",
    "ServerAuditOptions",
    "audit_server",
    "default_fetch",
    "ensure_unique_ids",
    "expect",
    "render_markdown",
    "server_audits",
    "summary_line",
]
