"""
Redshift Data API runner.

Configuration (one of three connection patterns):

    query_runner:
      redshift_data:
        provisioned:                      # (cluster_identifier, database, db_user)
          cluster_identifier: warehouse
          database: dev
          db_user: admin
        serverless:                       # (database, workgroup_name)
          database: dev
          workgroup_name: analytics
        with_secret:                      # (secrets_arn)
          secrets_arn: arn:aws:secretsmanager:...

    query:
      daily_users:
        runner: ${query_runner.redshift_data.provisioned}
        sql: SELECT count(*) AS users FROM users WHERE day = '${var.day}'

Runs ``execute_statement``, polls ``describe_statement`` until the
statement finishes, then pages through ``get_statement_result``.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from ..config.document import AttributeSchema
from ..context import get_request_id
from ..decode import decode_body
from ..diagnostics import Diagnostic, Diagnostics
from ..errors import BackendError, QueryTimeoutError, QueryValidationError
from ..expressions import is_known
from ..registry import RunnerDefinition
from ..result import QueryResult, format_scalar
from ..runner import PreparedQuery
from .aws import AwsQueryRunner

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ..config.document import Body
    from ..expressions import Expression
    from ..runner import QueryBase
    from ..scope import EvaluationScope
    from .aws import ClientFactory

logger = logging.getLogger(__name__)

TYPE_NAME = "redshift_data"

CONNECTION_PATTERNS = (
    frozenset({"secrets_arn"}),
    frozenset({"cluster_identifier", "database", "db_user"}),
    frozenset({"database", "workgroup_name"}),
)

INEFFECTIVE_COMBINATION = (
    "A valid attribute combination in query_runner.redshift_data is one of the following "
    "patterns (secrets_arn) , (cluster_identifier, database, db_user) or "
    "(database, workgroup_name)"
)

QUERY_SCHEMA = (AttributeSchema("sql", required=True),)

_FIELD_KEYS = ("stringValue", "longValue", "doubleValue", "booleanValue", "blobValue")


class RunnerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cluster_identifier: str | None = None
    database: str | None = None
    db_user: str | None = None
    workgroup_name: str | None = None
    secrets_arn: str | None = None
    region: str | None = None

    def connection_attributes(self) -> frozenset[str]:
        return frozenset(self.model_fields_set - {"region"})


def format_field(field: Mapping[str, Any]) -> str:
    """Render one Redshift Data API field (a single-key tagged union)."""
    if field.get("isNull"):
        return ""
    for key in _FIELD_KEYS:
        if key in field:
            return format_scalar(field[key])
    return ""


class RedshiftDataRunner(AwsQueryRunner):
    type_name = TYPE_NAME
    service_name = "redshift-data"

    def __init__(
        self,
        name: str,
        config: RunnerConfig,
        client_factory: ClientFactory | None = None,
    ):
        super().__init__(name, config.region, client_factory)
        self.config = config

    def prepare(self, base: QueryBase) -> tuple[PreparedQuery | None, Diagnostics]:
        logger.debug(f"[{TYPE_NAME}] prepare `{base.name}` with {TYPE_NAME} query_runner")
        content, diags = base.remain.content(QUERY_SCHEMA)
        if diags.has_errors():
            return None, diags

        sql = content["sql"].expr
        value, _ = sql.value(base.new_scope())
        if is_known(value) and (value is None or value == ""):
            diags.append(
                Diagnostic.error("Invalid SQL template", "sql is empty", base.remain.missing_item_range)
            )
            return None, diags
        return RedshiftDataQuery(base, runner=self, sql=sql), diags

    def execute_params(self, statement_name: str, sql: str) -> dict[str, Any]:
        params: dict[str, Any] = {"Sql": sql, "StatementName": statement_name}
        optional = {
            "Database": self.config.database,
            "ClusterIdentifier": self.config.cluster_identifier,
            "DbUser": self.config.db_user,
            "SecretArn": self.config.secrets_arn,
            "WorkgroupName": self.config.workgroup_name,
        }
        params.update({k: v for k, v in optional.items() if v is not None})
        return params

    async def run_query(self, statement_name: str, sql: str) -> QueryResult:
        request_id = get_request_id()
        logger.info(f"[{TYPE_NAME}][{request_id}] start redshift data query `{statement_name}`")
        logger.debug(f"[{TYPE_NAME}][{request_id}] query: {sql}")

        executed = await self.start_job(
            "execute_statement", self._cancel_executed, **self.execute_params(statement_name, sql)
        )
        statement_id = executed["Id"]

        waiter = self.new_waiter()
        try:
            async for _ in waiter:
                logger.debug(
                    f"[{TYPE_NAME}][{request_id}] waiting redshift query `{statement_name}` "
                    f"elapsed_time={waiter.elapsed:.3f}s"
                )
                described = await self.call("describe_statement", Id=statement_id)
                status = described.get("Status")
                if status == "ABORTED":
                    raise BackendError(f"query aborted: {described.get('Error', '')}")
                if status == "FAILED":
                    raise BackendError(f"query failed: {described.get('Error', '')}")
                if status == "FINISHED":
                    logger.info(
                        f"[{TYPE_NAME}][{request_id}] success redshift data query "
                        f"`{statement_name}`, elapsed_time={waiter.elapsed:.3f}s"
                    )
                    if not described.get("HasResultSet"):
                        return QueryResult.empty(statement_name, sql)
                    return await self._fetch(statement_name, sql, statement_id)
        except asyncio.CancelledError:
            logger.info(f"[{TYPE_NAME}][{request_id}] cancel redshift data query `{statement_name}`")
            await self.call_quietly("cancel_statement", Id=statement_id)
            raise

        logger.info(f"[{TYPE_NAME}][{request_id}] timeout redshift data query `{statement_name}`")
        await self.call_quietly("cancel_statement", Id=statement_id)
        raise QueryTimeoutError("query timeout")

    async def _cancel_executed(self, executed: dict[str, Any]) -> None:
        statement_id = executed["Id"]
        logger.info(f"[{TYPE_NAME}][{get_request_id()}] cancel redshift data statement {statement_id}")
        await self.call_quietly("cancel_statement", Id=statement_id)

    async def _fetch(self, statement_name: str, sql: str, statement_id: str) -> QueryResult:
        request_id = get_request_id()
        columns: list[str] | None = None
        rows: list[list[str]] = []
        params: dict[str, Any] = {"Id": statement_id}
        while True:
            page = await self.call("get_statement_result", **params)
            if columns is None:
                columns = [c.get("label") or c.get("name", "") for c in page.get("ColumnMetadata", [])]
                logger.debug(f"[{TYPE_NAME}][{request_id}] total rows = {page.get('TotalNumRows', 0)}")
            for record in page.get("Records", []):
                rows.append([format_field(field) for field in record])
            next_token = page.get("NextToken")
            if not next_token:
                break
            params["NextToken"] = next_token
        return QueryResult(statement_name, sql, tuple(columns or ()), tuple(tuple(r) for r in rows))


class RedshiftDataQuery(PreparedQuery):
    """A prepared SQL statement; the SQL template is evaluated per run."""

    def __init__(self, base: QueryBase, *, runner: RedshiftDataRunner, sql: Expression):
        super().__init__(base)
        self.runner = runner
        self.sql = sql

    def render_sql(self, scope: EvaluationScope) -> str:
        """
        Evaluate the SQL template.

        Raises:
            QueryValidationError: If it does not evaluate to a string
        """
        value, diags = self.sql.value(scope)
        if diags.has_errors():
            raise QueryValidationError(diags)
        if not is_known(value):
            diags.append(Diagnostic.error("Invalid SQL template", "SQL is unknown", self.sql.range))
            raise QueryValidationError(diags)
        if not isinstance(value, str):
            diags.append(Diagnostic.error("Invalid SQL template", "sql is not string", self.sql.range))
            raise QueryValidationError(diags)
        return value

    async def run(
        self,
        variables: Mapping[str, Any] | None = None,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> QueryResult:
        sql = self.render_sql(self.base.new_scope(variables, functions))
        return await self.runner.run_query(self.name, sql)


def build_runner(
    name: str,
    body: Body,
    scope: EvaluationScope,
    *,
    client_factory: ClientFactory | None = None,
) -> tuple[RedshiftDataRunner | None, Diagnostics]:
    config, diags = decode_body(body, scope, RunnerConfig)
    if config is None:
        return None, diags

    attributes = config.connection_attributes()
    if attributes not in CONNECTION_PATTERNS:
        logger.debug(
            f"[{TYPE_NAME}] no valid combination in {sorted(attributes)} at {body.missing_item_range}"
        )
        diags.append(
            Diagnostic.error(
                "Ineffective attribute combinations",
                INEFFECTIVE_COMBINATION,
                body.missing_item_range,
            )
        )
        return None, diags
    return RedshiftDataRunner(name, config, client_factory), diags


def definition(client_factory: ClientFactory | None = None) -> RunnerDefinition:
    """RunnerDefinition for ``redshift_data``."""
    return RunnerDefinition(TYPE_NAME, partial(build_runner, client_factory=client_factory))


__all__ = [
    "TYPE_NAME",
    "RedshiftDataQuery",
    "RedshiftDataRunner",
    "build_runner",
    "definition",
    "format_field",
]
