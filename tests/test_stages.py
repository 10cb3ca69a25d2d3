"""Tests for stage result normalisation and response body rendering."""

from __future__ import annotations

from graphql import ExecutionResult, GraphQLError

from gqlhttp_pipeline import (
    Continue,
    Fail,
    Respond,
    ResponseInit,
    ResponsePayload,
    render_errors,
    render_result,
    to_stage,
)
from gqlhttp_pipeline.formatting import dumps, error_to_json


class TestToStage:
    def test_none_continues_with_defaults(self):
        assert to_stage(None) == Continue()

    def test_variants_pass_through(self):
        fail = Fail([GraphQLError("no")])
        assert to_stage(fail) is fail

    def test_payload_responds(self):
        payload = ResponsePayload("{}", ResponseInit(status=418, status_text="I'm a teapot"))
        assert to_stage(payload) == Respond(payload)

    def test_error_list_fails(self):
        errors = [GraphQLError("a"), GraphQLError("b")]
        stage = to_stage(errors)
        assert isinstance(stage, Fail)
        assert list(stage.errors) == errors

    def test_plain_value_continues(self):
        assert to_stage({"user": 1}) == Continue({"user": 1})

    def test_mixed_list_is_a_value(self):
        stage = to_stage([GraphQLError("a"), "b"])
        assert isinstance(stage, Continue)


class TestRendering:
    def test_data_only(self):
        assert render_result(ExecutionResult(data={"hello": "world"})) == {
            "data": {"hello": "world"}
        }

    def test_failed_execution_keeps_null_data(self):
        body = render_result(ExecutionResult(data=None, errors=[GraphQLError("bad")]))
        assert body == {"data": None, "errors": [{"message": "bad"}]}

    def test_partial_data_keeps_both(self):
        body = render_result(
            ExecutionResult(data={"boom": None}, errors=[GraphQLError("bad", path=["boom"])])
        )
        assert body["data"] == {"boom": None}
        assert body["errors"][0]["path"] == ["boom"]

    def test_extensions_rendered(self):
        body = render_result(ExecutionResult(data={"a": 1}, extensions={"cost": 3}))
        assert body["extensions"] == {"cost": 3}

    def test_format_error_applied(self):
        body = render_errors(
            [GraphQLError("secret")], lambda err: GraphQLError("redacted")
        )
        assert body == {"errors": [{"message": "redacted"}]}

    def test_error_to_json_fallbacks(self):
        assert error_to_json({"message": "as is"}) == {"message": "as is"}
        assert error_to_json(ValueError("plain")) == {"message": "plain"}

    def test_dumps_is_compact_utf8(self):
        assert dumps({"data": {"greeting": "héllo"}}) == '{"data":{"greeting":"héllo"}}'
