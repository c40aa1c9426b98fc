"""
Tests for runner references and body decoding.
"""

import pytest
from pydantic import BaseModel, ConfigDict

from queryrunner.config.document import parse_document
from queryrunner.decode import decode_body
from queryrunner.diagnostics import SourceRange
from queryrunner.errors import QueryNotFoundError
from queryrunner.expressions import parse_template
from queryrunner.references import RunnerRef, parse_runner_ref, resolve_query_ref
from queryrunner.resolver import BLOCK_SCHEMA
from queryrunner.runner import PreparedQueries
from queryrunner.scope import EvaluationScope

RANGE = SourceRange("config.yaml", 8, 13, 8, 43)


def expression(text):
    expr, diags = parse_template(text, RANGE)
    assert not diags.has_errors()
    return expr


class TestParseRunnerRef:
    def test_valid_reference(self):
        ref, diags = parse_runner_ref(expression("${query_runner.dummy.default}"))

        assert not diags
        assert ref == RunnerRef("dummy", "default", RANGE)
        assert str(ref) == "query_runner.dummy.default"

    def test_constant_value(self):
        ref, diags = parse_runner_ref(expression("query_runner.dummy.default"))

        assert ref is None
        assert diags[0].summary == "Invalid Query Runner"
        assert "can not set constant value" in diags[0].detail
        assert diags[0].subject == RANGE

    def test_multiple_references(self):
        ref, diags = parse_runner_ref(
            expression("${query_runner.dummy.a}${query_runner.dummy.b}")
        )
        assert ref is None
        assert "can not set multiple query runners" in diags[0].detail

    def test_wrong_root(self):
        ref, diags = parse_runner_ref(expression("${var.dummy.default}"))
        assert ref is None
        assert diags[0].summary == "Invalid Relation"
        assert 'invalid reference "var.*"' in diags[0].detail

    @pytest.mark.parametrize(
        "text",
        [
            "${query_runner.dummy}",
            "${query_runner.dummy.default.extra}",
            '${query_runner["dummy"]["default"]}',
        ],
    )
    def test_shape_is_fixed(self, text):
        ref, diags = parse_runner_ref(expression(text))
        assert ref is None
        assert diags[0].summary == "Invalid Relation"
        assert "${query_runner.<type>.<name>}" in diags[0].detail

    def test_never_evaluated(self):
        # The reference root is not a variable of any scope
        expr = expression("${query_runner.dummy.default}")
        value, diags = expr.value(EvaluationScope())
        assert diags.has_errors()
        ref, ref_diags = parse_runner_ref(expr)
        assert ref is not None
        assert not ref_diags


class _Query:
    def __init__(self, name):
        self.name = name


class TestResolveQueryRef:
    def test_found(self):
        queries = PreparedQueries([_Query("hoge"), _Query("fuga")])
        assert resolve_query_ref(expression("${query.fuga}"), queries).name == "fuga"

    def test_not_found(self):
        with pytest.raises(QueryNotFoundError):
            resolve_query_ref(expression("${query.piyo}"), PreparedQueries())

    def test_wrong_root(self):
        with pytest.raises(ValueError):
            resolve_query_ref(expression("${var.hoge}"), PreparedQueries())


class RunnerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    region: str | None = None
    limit: int = 10


class TestDecodeBody:
    def _body(self, src):
        document, _ = parse_document(src)
        blocks, _, _ = document.partial_content(BLOCK_SCHEMA)
        return blocks[0].body

    def test_decodes(self):
        body = self._body("query_runner:\n  t:\n    n:\n      region: ${var.region}\n      limit: 5\n")
        scope = EvaluationScope(variables={"var": {"region": "us-east-1"}})

        config, diags = decode_body(body, scope, RunnerConfig)

        assert not diags
        assert config == RunnerConfig(region="us-east-1", limit=5)
        assert config.model_fields_set == {"region", "limit"}

    def test_unsupported_argument(self):
        body = self._body("query_runner:\n  t:\n    n:\n      regoin: x\n")

        config, diags = decode_body(body, EvaluationScope(), RunnerConfig)

        assert config is None
        assert diags[0].summary == "Unsupported argument"
        assert diags[0].subject.start_line == 4

    def test_wrong_type(self):
        body = self._body("query_runner:\n  t:\n    n:\n      limit: [1]\n")

        config, diags = decode_body(body, EvaluationScope(), RunnerConfig)

        assert config is None
        assert diags[0].summary == "Incorrect attribute value type"
        assert 'attribute "limit"' in diags[0].detail

    def test_evaluation_error(self):
        body = self._body("query_runner:\n  t:\n    n:\n      region: ${var.nothing}\n")

        config, diags = decode_body(body, EvaluationScope(), RunnerConfig)

        assert config is None
        assert diags[0].summary == "Unknown variable"
