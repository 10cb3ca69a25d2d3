"""Human-readable rendering of audit results."""

from __future__ import annotations

import json

from gqlhttp_audit.common import AuditResult, AuditStatus
from gqlhttp_audit.models import AuditSummary


def summary_line(summary: AuditSummary) -> str:
    return (
        f"{summary.ok} audits pass out of {summary.total} "
        f"({summary.warn} warnings, {summary.error} errors)"
    )


def verdict_line(summary: AuditSummary) -> str:
    """One-line compliance verdict, suitable for CI logs."""
    if summary.error:
        return f"Server does not comply with GraphQL over HTTP. {summary_line(summary)}"
    if summary.warn:
        return (
            "Server is compliant with GraphQL over HTTP, but some optional audits fail. "
            f"{summary_line(summary)}"
        )
    return "Server is fully compliant with GraphQL over HTTP!"


def _render_failure(result: AuditResult) -> list[str]:
    lines = [f"1. `{result.id}` {result.name}", "<details>", f"<summary>{result.reason}</summary>", ""]
    response = result.response
    if response is not None:
        try:
            body = json.dumps(json.loads(response.text), indent=2)
        except ValueError:
            body = response.text
        headers = "\n".join(f"{key}: {value}" for key, value in response.headers.items())
        lines += [
            "```",
            f"{response.status_code} {response.reason_phrase}",
            headers,
            "",
            body,
            "```",
        ]
    lines += ["</details>"]
    return lines


def render_markdown(results: list[AuditResult]) -> str:
    """Markdown report listing every audit with its verdict."""
    summary = AuditSummary.from_results(results)
    lines = [
        "# GraphQL over HTTP audit report",
        "",
        f"- **{summary.total}** audits in total",
        f"- **{summary.ok}** pass",
        f"- **{summary.warn}** warnings (optional)",
        f"- **{summary.error}** errors (required)",
    ]

    passing = [r for r in results if r.status == AuditStatus.OK]
    if passing:
        lines += ["", "## Passing", ""]
        lines += [f"1. `{r.id}` {r.name}" for r in passing]

    warnings = [r for r in results if r.status == AuditStatus.WARN]
    if warnings:
        lines += ["", "## Warnings", "The server _SHOULD_ support these, but is not required.", ""]
        for result in warnings:
            lines += _render_failure(result)

    errors = [r for r in results if r.status == AuditStatus.ERROR]
    if errors:
        lines += ["", "## Errors", "The server _MUST_ support these.", ""]
        for result in errors:
            lines += _render_failure(result)

    return "\n".join(lines) + "\n"
