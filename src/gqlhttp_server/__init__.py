"""Starlette hosting for the GraphQL over HTTP handler."""

from gqlhttp_server.app import create_app, to_request
from gqlhttp_server.schema import build_reference_schema

__all__ = ["build_reference_schema", "create_app", "to_request"]
