"""
Pytest configuration and fixtures for queryrunner tests.
"""

import sys
from pathlib import Path

import pytest
from pydantic import BaseModel, ConfigDict

# Add the repository root to path for imports
# This allows `from queryrunner import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from queryrunner.config.document import AttributeSchema  # noqa: E402
from queryrunner.config.settings import get_settings  # noqa: E402
from queryrunner.decode import decode_body  # noqa: E402
from queryrunner.errors import BackendError, QueryTimeoutError, QueryValidationError  # noqa: E402
from queryrunner.registry import RunnerDefinition, RunnerRegistry  # noqa: E402
from queryrunner.result import QueryResult  # noqa: E402
from queryrunner.runner import PreparedQuery, QueryRunner  # noqa: E402


# =============================================================================
# Dummy runner
# =============================================================================


class DummyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    columns: list[str]


class DummyRunner(QueryRunner):
    """
    Runner that answers with the rows written in the query block.

        query_runner:
          dummy:
            default:
              columns: [a, b]
        query:
          hoge:
            runner: ${query_runner.dummy.default}
            rows: [["${var.x}", "2"]]
            error: backend      # optional: backend | timeout
    """

    type_name = "dummy"

    def __init__(self, name, columns):
        super().__init__(name)
        self.columns = columns

    def prepare(self, base):
        content, remain, diags = base.remain.partial_content(
            (AttributeSchema("rows", required=True), AttributeSchema("error"))
        )
        if diags.has_errors():
            return None, diags
        error = None
        if "error" in content:
            error, _ = content["error"].expr.value(base.new_scope())
        return DummyQuery(base, self, content["rows"].expr, remain, error), diags


class DummyQuery(PreparedQuery):
    def __init__(self, base, runner, rows, remain, error=None):
        super().__init__(base)
        self.runner = runner
        self.rows = rows
        self.remain = remain
        self.error = error

    async def run(self, variables=None, functions=None):
        if self.error == "backend":
            raise BackendError("dummy backend failed")
        if self.error == "timeout":
            raise QueryTimeoutError("dummy query timeout")
        rows, diags = self.rows.value(self.base.new_scope(variables, functions))
        if diags.has_errors():
            raise QueryValidationError(diags)
        return QueryResult.from_rows(self.name, "dummy", self.runner.columns, rows)


def build_dummy_runner(name, body, scope):
    config, diags = decode_body(body, scope, DummyConfig)
    if config is None:
        return None, diags
    return DummyRunner(name, config.columns), diags


# =============================================================================
# Fixtures
# =============================================================================


DUMMY_CONFIG = """\
query_runner:
  dummy:
    default:
      columns: [a, b]

query:
  hoge:
    runner: ${query_runner.dummy.default}
    description: hoge query
    rows:
      - ["${var.x}", "2"]
    extra: 1

  fuga:
    runner: ${query_runner.dummy.default}
    rows: []
"""


@pytest.fixture
def dummy_registry():
    """Registry holding only the dummy runner type."""
    return RunnerRegistry([RunnerDefinition("dummy", build_dummy_runner)])


@pytest.fixture
def write_config(tmp_path):
    """Write configuration text to a file under tmp_path and return its path."""

    def _write(text, name="config.yaml"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def dummy_config_path(write_config):
    return write_config(DUMMY_CONFIG)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """get_settings is cached per process; start every test from the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
