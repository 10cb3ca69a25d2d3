"""Conformance audits for GraphQL over HTTP servers.

`server_audits` returns the ordered audit registry bound to one target.
Ids and descriptions are a published contract: audits are only ever
appended, never renumbered or reworded.

Usage::

    results = await audit_server(ServerAuditOptions(url="http://localhost:4000/graphql"))
    for result in results:
        print(result.id, result.name, result.status)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import anyio
import httpx

from gqlhttp_audit.assertions import AuditFailure, expect, json_type_name
from gqlhttp_audit.common import (
    Audit,
    AuditResult,
    Fetch,
    RequirementLevel,
    ServerAuditOptions,
)

logger = logging.getLogger(__name__)

MUST = RequirementLevel.MUST
SHOULD = RequirementLevel.SHOULD
MAY = RequirementLevel.MAY

GRAPHQL_RESPONSE = "application/graphql-response+json"
JSON = "application/json"

TYPENAME_QUERY = "{ __typename }"
# a field that cannot exist on any schema
UNKNOWN_FIELD_QUERY = "{ f8f31403dfe404bccbb0e835f2629c6a7 }"
TYPE_BY_NAME_QUERY = "query Type($name: String!) { __type(name: $name) { name } }"

# invalid parameter values paired with their audit ids
_INVALID_QUERY = [({"obj": "ect"}, "6C00"), (0, "3E36"), (False, "2A2D"), (["array"], "D5C4")]
_INVALID_OPERATION_NAME = [
    ({"obj": "ect"}, "0F5A"),
    (0, "8B7E"),
    (False, "1C31"),
    (["array"], "7AE2"),
]
_INVALID_VARIABLES = [("string", "4A5F"), (0, "93B1"), (False, "60C8"), (["array"], "D41E")]
_INVALID_EXTENSIONS = [("string", "E2C7"), (0, "5B4A"), (False, "0C9D"), (["array"], "7F13")]


async def default_fetch(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    content: str | bytes | None = None,
) -> httpx.Response:
    """One request on a short-lived client, sending only the given headers."""
    async with httpx.AsyncClient() as client:
        client.headers.pop("accept", None)
        return await client.request(method, url, headers=headers, content=content)


def ensure_unique_ids(audits: Iterable[Audit]) -> None:
    """Raise ``ValueError`` if two audits share an id."""
    seen: set[str] = set()
    for audit in audits:
        if len(audit.id) != 4:
            raise ValueError(f"Audit id {audit.id!r} is not 4 characters long")
        if audit.id in seen:
            raise ValueError(f"Duplicate audit id {audit.id!r}")
        seen.add(audit.id)


def server_audits(options: ServerAuditOptions) -> list[Audit]:
    """Build the ordered audit registry for the server at ``options.url``."""
    fetch: Fetch = options.fetch or default_fetch
    audits: list[Audit] = []

    def audit(
        audit_id: str, level: RequirementLevel, description: str
    ) -> Callable[[Callable[[], Awaitable[None]]], Callable[[], Awaitable[None]]]:
        def register(fn: Callable[[], Awaitable[None]]) -> Callable[[], Awaitable[None]]:
            audits.append(Audit(audit_id, level, description, fn))
            return fn

        return register

    def url_with(**params: str) -> str:
        return str(httpx.URL(options.url).copy_merge_params(params))

    async def get(accept: str | None = None, **params: str) -> httpx.Response:
        headers = {"accept": accept} if accept else None
        return await fetch("GET", url_with(**params), headers=headers)

    async def post(
        body: Any = None,
        *,
        accept: str | None = GRAPHQL_RESPONSE,
        content_type: str | None = JSON,
        raw: str | None = None,
    ) -> httpx.Response:
        headers: dict[str, str] = {}
        if content_type:
            headers["content-type"] = content_type
        if accept:
            headers["accept"] = accept
        content = raw if raw is not None else (None if body is None else json.dumps(body))
        return await fetch("POST", options.url, headers=headers, content=content)

    # ---- Media types ---------------------------------------------------- #

    @audit("22EB", SHOULD, f"accept {GRAPHQL_RESPONSE} and match the content-type")
    async def _() -> None:
        res = await get(GRAPHQL_RESPONSE, query=TYPENAME_QUERY)
        expect(res).status_to_be(200)
        expect(res).header("content-type").to_contain(GRAPHQL_RESPONSE)

    @audit("4655", MUST, f"accept {JSON} and match the content-type")
    async def _() -> None:
        res = await get(JSON, query=TYPENAME_QUERY)
        expect(res).status_to_be(200)
        expect(res).header("content-type").to_contain(JSON)

    @audit("47DE", SHOULD, f"accept */* and use {JSON} for the content-type")
    async def _() -> None:
        res = await get("*/*", query=TYPENAME_QUERY)
        expect(res).status_to_be(200)
        expect(res).header("content-type").to_contain(JSON)

    @audit("80D8", SHOULD, f"assume {JSON} content-type when accept is missing")
    async def _() -> None:
        res = await get(query=TYPENAME_QUERY)
        expect(res).status_to_be(200)
        expect(res).header("content-type").to_contain(JSON)

    @audit("82A3", MUST, "use utf-8 encoding when responding")
    async def _() -> None:
        res = await get(query=TYPENAME_QUERY)
        expect(res).status_to_be(200)
        if "charset" in (res.headers.get("content-type") or ""):
            expect(res).header("content-type").to_contain("charset=utf-8")
        else:
            expect(res).body()

    @audit("BF61", MUST, "NOT respond in a charset other than utf-8")
    async def _() -> None:
        res = await get(f"{GRAPHQL_RESPONSE}; charset=iso-8859-1", query=TYPENAME_QUERY)
        expect(res).header("content-type").not_to_contain("iso-8859-1")
        expect(res).body()

    # ---- Request -------------------------------------------------------- #

    @audit("78D5", MUST, "accept POST requests")
    async def _() -> None:
        res = await post({"query": TYPENAME_QUERY}, accept=None)
        expect(res).status_to_be(200)

    @audit("2C94", MAY, "accept application/x-www-form-urlencoded formatted GET requests")
    async def _() -> None:
        res = await get(query=TYPENAME_QUERY)
        expect(res).status_to_be(200)

    @audit("5A70", SHOULD, "respond with 405 to requests using unsupported methods")
    async def _() -> None:
        res = await fetch(
            "PUT",
            options.url,
            headers={"content-type": JSON},
            content=json.dumps({"query": TYPENAME_QUERY}),
        )
        expect(res).status_to_be(405)

    # ---- Request GET ---------------------------------------------------- #

    @audit("9ABE", MUST, "NOT allow executing mutations on GET requests")
    async def _() -> None:
        res = await get(GRAPHQL_RESPONSE, query="mutation { __typename }")
        expect(res).status_between(400, 499)

    @audit("3F64", SHOULD, "respond with 405 allowing POST to mutations on GET requests")
    async def _() -> None:
        res = await get(GRAPHQL_RESPONSE, query="mutation { __typename }")
        expect(res).status_to_be(405)
        expect(res).header("allow").to_contain("POST")

    # ---- Request POST --------------------------------------------------- #

    @audit("03D4", SHOULD, "respond with 4xx status code if content-type is not supplied on POST requests")
    async def _() -> None:
        res = await post(accept=None, content_type=None)
        expect(res).status_between(400, 499)

    @audit("A5BF", MUST, f"accept {JSON} POST requests")
    async def _() -> None:
        res = await post({"query": TYPENAME_QUERY}, accept=None)
        expect(res).status_to_be(200)

    @audit("2E2C", MUST, f"accept {JSON}; charset=utf-8 POST requests")
    async def _() -> None:
        res = await post(
            {"query": TYPENAME_QUERY}, accept=None, content_type=f"{JSON}; charset=utf-8"
        )
        expect(res).status_to_be(200)

    @audit("423F", MUST, "require a request body on POST")
    async def _() -> None:
        res = await post(accept=None)
        expect(res).status_to_be(400)

    # ---- Request parameters --------------------------------------------- #

    @audit("8A5C", MUST, "require the {query} parameter")
    async def _() -> None:
        res = await post({"notquery": TYPENAME_QUERY})
        expect(res).status_to_be(400)

    for invalid, audit_id in _INVALID_QUERY:

        @audit(audit_id, MUST, f"NOT allow {json_type_name(invalid)} for the {{query}} parameter")
        async def _(invalid: Any = invalid) -> None:
            res = await post({"query": invalid})
            expect(res).status_to_be(400)

    @audit("9C48", MUST, "accept a string for the {query} parameter")
    async def _() -> None:
        res = await post({"query": TYPENAME_QUERY})
        expect(res).status_to_be(200)

    for invalid, audit_id in _INVALID_OPERATION_NAME:

        @audit(
            audit_id,
            MUST,
            f"NOT allow {json_type_name(invalid)} for the {{operationName}} parameter",
        )
        async def _(invalid: Any = invalid) -> None:
            res = await post({"operationName": invalid, "query": TYPENAME_QUERY})
            expect(res).status_to_be(400)

    @audit("8ACA", MUST, "accept a string for the {operationName} parameter")
    async def _() -> None:
        res = await post({"operationName": "Query", "query": "query Query { __typename }"})
        expect(res).status_to_be(200)

    for invalid, audit_id in _INVALID_VARIABLES:

        @audit(
            audit_id,
            MUST,
            f"NOT allow {json_type_name(invalid)} for the {{variables}} parameter",
        )
        async def _(invalid: Any = invalid) -> None:
            res = await post({"query": TYPENAME_QUERY, "variables": invalid})
            expect(res).status_to_be(400)

    @audit("28B9", MUST, "accept a map for the {variables} parameter")
    async def _() -> None:
        res = await post({"query": TYPE_BY_NAME_QUERY, "variables": {"name": "sometype"}})
        expect(res).status_to_be(200)
        expect(res).body_not_to_have("errors")

    @audit("2EA1", MUST, "accept a URL-encoded JSON string for the {variables} parameter in GETs")
    async def _() -> None:
        res = await get(
            query=TYPE_BY_NAME_QUERY, variables=json.dumps({"name": "sometype"})
        )
        expect(res).status_to_be(200)
        expect(res).body_not_to_have("errors")

    @audit("D6D5", MAY, "allow null for the {variables} parameter")
    async def _() -> None:
        res = await post({"query": TYPENAME_QUERY, "variables": None})
        expect(res).status_to_be(200)

    for invalid, audit_id in _INVALID_EXTENSIONS:

        @audit(
            audit_id,
            MUST,
            f"NOT allow {json_type_name(invalid)} for the {{extensions}} parameter",
        )
        async def _(invalid: Any = invalid) -> None:
            res = await post({"query": TYPENAME_QUERY, "extensions": invalid})
            expect(res).status_to_be(400)

    @audit("428F", MUST, "accept a map for the {extensions} parameter")
    async def _() -> None:
        res = await post({"query": TYPENAME_QUERY, "extensions": {"some": "value"}})
        expect(res).status_to_be(200)

    # ---- Response application/json -------------------------------------- #

    @audit("572B", MUST, f"use 400 status code on JSON parsing failure when accepting {JSON}")
    async def _() -> None:
        res = await post(accept=JSON, raw='{ "not a JSON')
        expect(res).status_to_be(400)

    @audit("FDE2", MUST, f"use 400 status code if parameters are invalid when accepting {JSON}")
    async def _() -> None:
        res = await get(JSON, qeury=TYPENAME_QUERY)
        expect(res).status_to_be(400)

    @audit("7B9B", SHOULD, f"use 200 status code on document parsing failure when accepting {JSON}")
    async def _() -> None:
        res = await get(JSON, query="{")
        expect(res).status_to_be(200)

    @audit("865D", SHOULD, f"use 200 status code on document validation failure when accepting {JSON}")
    async def _() -> None:
        res = await get(JSON, query=UNKNOWN_FIELD_QUERY)
        expect(res).status_to_be(200)

    @audit("556A", SHOULD, f"use 200 status code on variable coercion failure when accepting {JSON}")
    async def _() -> None:
        res = await get(JSON, query=TYPE_BY_NAME_QUERY)
        expect(res).status_to_be(200)

    @audit("E8F2", MUST, f"contain the errors entry on document validation failure when accepting {JSON}")
    async def _() -> None:
        res = await get(JSON, query=UNKNOWN_FIELD_QUERY)
        expect(res).body_to_have("errors")

    # ---- Response application/graphql-response+json --------------------- #

    failures: list[tuple[str, tuple[str, str, str], Callable[[], Awaitable[httpx.Response]]]] = [
        (
            "on JSON parsing failure",
            ("A3A5", "17B6", "2CE8"),
            lambda: post(raw='{ "not a JSON'),
        ),
        (
            "if parameters are invalid",
            ("9F2D", "61C2", "B4E3"),
            lambda: get(GRAPHQL_RESPONSE, qeury=TYPENAME_QUERY),
        ),
        (
            "on document parsing failure",
            ("C5D1", "2F7E", "48A0"),
            lambda: get(GRAPHQL_RESPONSE, query="{"),
        ),
        (
            "on document validation failure",
            ("86EE", "3A1B", "D0F4"),
            lambda: get(GRAPHQL_RESPONSE, query=UNKNOWN_FIELD_QUERY),
        ),
    ]
    for situation, (range_id, exact_id, no_data_id), send in failures:

        @audit(range_id, MUST, f"use 4xx or 5xx status codes {situation} when accepting {GRAPHQL_RESPONSE}")
        async def _(send: Callable[[], Awaitable[httpx.Response]] = send) -> None:
            expect(await send()).status_between(400, 599)

        @audit(exact_id, SHOULD, f"use 400 status code {situation} when accepting {GRAPHQL_RESPONSE}")
        async def _(send: Callable[[], Awaitable[httpx.Response]] = send) -> None:
            expect(await send()).status_to_be(400)

        @audit(no_data_id, SHOULD, f"NOT contain the data entry {situation} when accepting {GRAPHQL_RESPONSE}")
        async def _(send: Callable[[], Awaitable[httpx.Response]] = send) -> None:
            expect(await send()).body_not_to_have("data")

    @audit("5F9C", MUST, f"use 4xx or 5xx status codes on variable coercion failure when accepting {GRAPHQL_RESPONSE}")
    async def _() -> None:
        res = await get(GRAPHQL_RESPONSE, query=TYPE_BY_NAME_QUERY)
        expect(res).status_between(400, 599)

    @audit("E1A7", SHOULD, f"use 400 status code on variable coercion failure when accepting {GRAPHQL_RESPONSE}")
    async def _() -> None:
        res = await get(GRAPHQL_RESPONSE, query=TYPE_BY_NAME_QUERY)
        expect(res).status_to_be(400)

    @audit("0B3E", SHOULD, "reject subscription operations with a 4xx status code")
    async def _() -> None:
        res = await post({"query": "subscription { __typename }"})
        expect(res).status_between(400, 499)

    @audit("1E6A", MUST, f"use 2xx status code if the response contains non-null data when accepting {GRAPHQL_RESPONSE}")
    async def _() -> None:
        res = await get(GRAPHQL_RESPONSE, query=TYPENAME_QUERY)
        expect(res).status_between(200, 299)
        expect(res).data_to_be({"__typename": "Query"})

    # ---- Idempotence ---------------------------------------------------- #

    @audit("7C2F", MAY, "respond identically to repeated GET requests")
    async def _() -> None:
        first = await get(GRAPHQL_RESPONSE, query=TYPENAME_QUERY)
        for _attempt in range(2):
            again = await get(GRAPHQL_RESPONSE, query=TYPENAME_QUERY)
            if (
                again.status_code != first.status_code
                or again.headers.get("content-type") != first.headers.get("content-type")
                or again.content != first.content
            ):
                raise AuditFailure("Repeated GET requests produced different responses", again)

    ensure_unique_ids(audits)
    return audits


async def audit_server(options: ServerAuditOptions) -> list[AuditResult]:
    """Run every audit concurrently; results come back in registry order.

    A fatal failure cancels the audits still running before it propagates.

    Raises:
        Exception: The first fatal (non-assertion) failure of any audit.
    """
    audits = server_audits(options)
    logger.debug("Running %d audits against %s", len(audits), options.url)
    results: list[AuditResult | None] = [None] * len(audits)

    async def run(index: int, audit: Audit) -> None:
        results[index] = await audit.run()

    try:
        async with anyio.create_task_group() as tg:
            for index, audit in enumerate(audits):
                tg.start_soon(run, index, audit)
    except BaseExceptionGroup as group:
        raise group.exceptions[0] from None
    return [result for result in results if result is not None]
