"""
CloudWatch Logs Insights runner.

Configuration:

    query_runner:
      cloudwatch_logs_insights:
        default:
          region: ap-northeast-1        # optional

    query:
      lambda_errors:
        runner: ${query_runner.cloudwatch_logs_insights.default}
        log_group_names: ["/aws/lambda/${var.function}"]
        query: |
          fields @timestamp, @message
          | filter @message like /ERROR/
        start_time: ${now() - duration("1h")}   # default: now() - duration("15m")
        end_time: ${now()}                      # default: now()
        limit: 100                              # optional
        ignore_fields: ["@logStream"]           # optional

Runs ``start_query`` and polls ``get_query_results`` until the query is
Complete. The ``@ptr`` field is always dropped from the result.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from ..config.document import Attribute, AttributeSchema, Body
from ..context import get_request_id
from ..decode import decode_body
from ..diagnostics import Diagnostic, Diagnostics
from ..errors import BackendError, QueryTimeoutError, QueryValidationError
from ..expressions import is_known, parse_expression
from ..registry import RunnerDefinition
from ..result import QueryResult
from ..runner import PreparedQuery
from .aws import AwsQueryRunner

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ..expressions import Expression
    from ..runner import QueryBase
    from ..scope import EvaluationScope
    from .aws import ClientFactory

logger = logging.getLogger(__name__)

TYPE_NAME = "cloudwatch_logs_insights"

DEFAULT_START_TIME = 'now() - duration("15m")'
DEFAULT_END_TIME = "now()"

POINTER_FIELD = "@ptr"
PENDING_STATUSES = ("Scheduled", "Running")
COMPLETE_STATUS = "Complete"

QUERY_SCHEMA = (
    AttributeSchema("query", required=True),
    AttributeSchema("log_group_names", required=True),
    AttributeSchema("start_time"),
    AttributeSchema("end_time"),
    AttributeSchema("limit"),
    AttributeSchema("ignore_fields"),
)


class RunnerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    region: str | None = None


class StaticQueryConfig(BaseModel):
    """Query attributes decoded once at prepare time."""

    model_config = ConfigDict(extra="forbid", strict=True)

    limit: int | None = None
    ignore_fields: list[str] = []


def _invalid(summary: str, detail: str, expr: Expression) -> QueryValidationError:
    return QueryValidationError(Diagnostics([Diagnostic.error(summary, detail, expr.range)]))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CloudWatchLogsInsightsRunner(AwsQueryRunner):
    type_name = TYPE_NAME
    service_name = "logs"

    def prepare(self, base: QueryBase) -> tuple[PreparedQuery | None, Diagnostics]:
        logger.debug(f"[{TYPE_NAME}] prepare `{base.name}` with {TYPE_NAME} query_runner")
        content, diags = base.remain.content(QUERY_SCHEMA)
        if diags.has_errors():
            return None, diags

        scope = base.new_scope()
        static_attrs = [content[n] for n in ("limit", "ignore_fields") if n in content]
        static, static_diags = decode_body(
            Body(static_attrs, base.remain.missing_item_range),
            scope,
            StaticQueryConfig,
        )
        diags.extend(static_diags)

        query_expr = content["query"].expr
        value, _ = query_expr.value(scope)
        if is_known(value) and value is None:
            diags.append(
                Diagnostic.error("Invalid query template", "required attribute query", query_expr.range)
            )
        log_group_names_expr = content["log_group_names"].expr
        value, _ = log_group_names_expr.value(scope)
        if is_known(value) and value is None:
            diags.append(
                Diagnostic.error(
                    "Invalid log_group_names",
                    "required attribute log_group_names",
                    log_group_names_expr.range,
                )
            )

        start_time_expr, start_diags = self._time_expression(
            content.get("start_time"), DEFAULT_START_TIME, "default_start_time", scope
        )
        diags.extend(start_diags)
        end_time_expr, end_diags = self._time_expression(
            content.get("end_time"), DEFAULT_END_TIME, "default_end_time", scope
        )
        diags.extend(end_diags)

        logger.debug(f"[{TYPE_NAME}] end query block, {len(diags.errors())} error diags")
        if diags.has_errors() or static is None:
            return None, diags

        return (
            CloudWatchLogsInsightsQuery(
                base,
                runner=self,
                query=query_expr,
                log_group_names=log_group_names_expr,
                start_time=start_time_expr,
                end_time=end_time_expr,
                limit=static.limit,
                ignore_fields=tuple(static.ignore_fields),
            ),
            diags,
        )

    @staticmethod
    def _time_expression(
        attr: Attribute | None, fallback: str, filename: str, scope: EvaluationScope
    ) -> tuple[Expression | None, Diagnostics]:
        if attr is not None:
            value, _ = attr.expr.value(scope)
            if not (is_known(value) and value is None):
                return attr.expr, Diagnostics()
        expr, diags = parse_expression(fallback, filename)
        return expr, diags

    async def run_query(
        self,
        name: str,
        params: dict[str, Any],
        ignore_fields: tuple[str, ...] = (),
    ) -> QueryResult:
        request_id = get_request_id()
        started = await self.start_job("start_query", self._stop_started, **params)
        query_id = started["queryId"]

        if "logGroupName" in params:
            log_group_names = params["logGroupName"]
        else:
            log_group_names = "[" + ",".join(params["logGroupNames"]) + "]"
        logger.info(f"[{TYPE_NAME}][{request_id}] start cloudwatch logs insights query to {log_group_names}")
        logger.info(
            f"[{TYPE_NAME}][{request_id}] time range: "
            f"{datetime.fromtimestamp(params['startTime']).astimezone()} ~ "
            f"{datetime.fromtimestamp(params['endTime']).astimezone()}"
        )
        logger.debug(f"[{TYPE_NAME}][{request_id}] query string: {params['queryString']}")

        output = await self._wait_query_results(query_id)

        statistics = output.get("statistics", {})
        results = output.get("results", [])
        logger.debug(
            f"[{TYPE_NAME}][{request_id}] query result: {len(results)} results, "
            f"{statistics.get('bytesScanned', 0)} bytes scanned, "
            f"{statistics.get('recordsMatched', 0)} records matched, "
            f"{statistics.get('recordsScanned', 0)} records scanned"
        )
        records = [[(f["field"], f.get("value") or "") for f in result] for result in results]
        return QueryResult.from_records(
            name,
            params["queryString"],
            records,
            ignore_fields=(POINTER_FIELD, *ignore_fields),
        )

    async def _stop_started(self, started: dict[str, Any]) -> None:
        query_id = started["queryId"]
        logger.info(f"[{TYPE_NAME}][{get_request_id()}] cancel cloudwatch logs insights query {query_id}")
        await self.call_quietly("stop_query", queryId=query_id)

    async def _wait_query_results(self, query_id: str) -> dict[str, Any]:
        request_id = get_request_id()
        waiter = self.new_waiter()
        try:
            async for _ in waiter:
                logger.debug(
                    f"[{TYPE_NAME}][{request_id}] waiting cloudwatch logs insights query "
                    f"elapsed_time={waiter.elapsed:.3f}s"
                )
                output = await self.call("get_query_results", queryId=query_id)
                status = output.get("status")
                if status in PENDING_STATUSES:
                    continue
                if status == COMPLETE_STATUS:
                    return output
                raise BackendError(f"get query result unknown status: {status}")
        except asyncio.CancelledError:
            logger.info(f"[{TYPE_NAME}][{request_id}] cancel cloudwatch logs insights query {query_id}")
            await self.call_quietly("stop_query", queryId=query_id)
            raise

        logger.info(f"[{TYPE_NAME}][{request_id}] timeout cloudwatch logs insights query {query_id}")
        await self.call_quietly("stop_query", queryId=query_id)
        raise QueryTimeoutError("wait query result timeout")


class CloudWatchLogsInsightsQuery(PreparedQuery):
    """A prepared Logs Insights query; time range and text are evaluated per run."""

    def __init__(
        self,
        base: QueryBase,
        *,
        runner: CloudWatchLogsInsightsRunner,
        query: Expression,
        log_group_names: Expression,
        start_time: Expression,
        end_time: Expression,
        limit: int | None = None,
        ignore_fields: tuple[str, ...] = (),
    ):
        super().__init__(base)
        self.runner = runner
        self.query = query
        self.log_group_names = log_group_names
        self.start_time = start_time
        self.end_time = end_time
        self.limit = limit
        self.ignore_fields = ignore_fields

    def _evaluate(self, expr: Expression, scope: EvaluationScope, label: str) -> Any:
        value, diags = expr.value(scope)
        if diags.has_errors():
            raise QueryValidationError(diags)
        if not is_known(value):
            raise _invalid(f"Invalid {label} template", f"{label} is unknown", expr)
        return value

    def build_params(self, scope: EvaluationScope) -> dict[str, Any]:
        """
        Evaluate the deferred attributes into ``start_query`` parameters.

        Raises:
            QueryValidationError: If any attribute has the wrong type
        """
        query = self._evaluate(self.query, scope, "query")
        if not isinstance(query, str):
            raise _invalid("Invalid query template", "query is not string", self.query)
        if query == "":
            raise _invalid("Invalid query template", "query is empty", self.query)

        start_time = self._evaluate(self.start_time, scope, "start_time")
        if not _is_number(start_time):
            raise _invalid("Invalid start_time template", "start_time is not number", self.start_time)
        end_time = self._evaluate(self.end_time, scope, "end_time")
        if not _is_number(end_time):
            raise _invalid("Invalid end_time template", "end_time is not number", self.end_time)

        params: dict[str, Any] = {
            "startTime": int(start_time),
            "endTime": int(end_time),
            "queryString": query,
        }
        if self.limit is not None:
            params["limit"] = self.limit

        log_group_names = self._evaluate(self.log_group_names, scope, "log_group_names")
        if not isinstance(log_group_names, (list, tuple)) or not all(
            isinstance(n, str) for n in log_group_names
        ):
            raise _invalid(
                "Invalid log_group_names", "log_group_names is must string list", self.log_group_names
            )
        if not log_group_names:
            raise _invalid("Invalid log_group_names", "missing log_group_names", self.log_group_names)
        if len(log_group_names) == 1:
            params["logGroupName"] = log_group_names[0]
        else:
            params["logGroupNames"] = list(log_group_names)
        return params

    async def run(
        self,
        variables: Mapping[str, Any] | None = None,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> QueryResult:
        params = self.build_params(self.base.new_scope(variables, functions))
        return await self.runner.run_query(self.name, params, self.ignore_fields)


def build_runner(
    name: str,
    body: Body,
    scope: EvaluationScope,
    *,
    client_factory: ClientFactory | None = None,
) -> tuple[CloudWatchLogsInsightsRunner | None, Diagnostics]:
    config, diags = decode_body(body, scope, RunnerConfig)
    if config is None:
        return None, diags
    return CloudWatchLogsInsightsRunner(name, config.region, client_factory), diags


def definition(client_factory: ClientFactory | None = None) -> RunnerDefinition:
    """RunnerDefinition for ``cloudwatch_logs_insights``."""
    return RunnerDefinition(TYPE_NAME, partial(build_runner, client_factory=client_factory))


__all__ = [
    "TYPE_NAME",
    "CloudWatchLogsInsightsQuery",
    "CloudWatchLogsInsightsRunner",
    "build_runner",
    "definition",
]
