"""Audit a running server for GraphQL over HTTP compliance.

Prints a Markdown report and a one-line verdict. With ``--reports-dir``
also writes ``README.md`` (the report) and ``report.json`` there.

Failing audits are informational: the exit code is non-zero only when
auditing itself could not complete (unreachable server, broken check).

Usage:
    python -m gqlhttp_audit --url http://localhost:4000/graphql
    PORT=4000 python -m gqlhttp_audit --reports-dir reports
    URL=http://localhost:4000/graphql python -m gqlhttp_audit --format json
"""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

import anyio

from gqlhttp_audit.common import AuditResult, ServerAuditOptions
from gqlhttp_audit.models import AuditReport
from gqlhttp_audit.render import render_markdown, verdict_line
from gqlhttp_audit.server import audit_server

logger = logging.getLogger("gqlhttp_audit")


def default_url() -> str:
    return os.environ.get("URL") or f"http://localhost:{os.environ.get('PORT', '4000')}/graphql"


def write_reports(reports_dir: Path, url: str, results: list[AuditResult]) -> None:
    reports_dir.mkdir(parents=True, exist_ok=True)
    (reports_dir / "README.md").write_text(render_markdown(results), encoding="utf-8")
    report = AuditReport.from_results(url, results)
    (reports_dir / "report.json").write_text(
        report.model_dump_json(indent=2) + "\n", encoding="utf-8"
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="GraphQL over HTTP server audit")
    parser.add_argument("--url", default=None, help="Server endpoint (default: $URL or localhost:$PORT)")
    parser.add_argument("--reports-dir", type=Path, default=None, help="Write README.md and report.json here")
    parser.add_argument(
        "--format",
        choices=["markdown", "json"],
        default="markdown",
        help="Format of the printed report",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    url = args.url or default_url()
    options = ServerAuditOptions(url=url)

    try:
        results = anyio.run(audit_server, options)
    except Exception:  # noqa: BLE001
        logger.exception("Auditing %s failed", url)
        return 1

    report = AuditReport.from_results(url, results)
    if args.format == "json":
        print(report.model_dump_json(indent=2))
    else:
        print(render_markdown(results))
    print(verdict_line(report.summary))

    if args.reports_dir is not None:
        write_reports(args.reports_dir, url, results)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
