"""
Tests for the CloudWatch Logs Insights runner, against a mocked logs client.
"""

import asyncio
import time
from unittest.mock import MagicMock

import pytest

from queryrunner.config.document import parse_document
from queryrunner.errors import BackendError, QueryTimeoutError, QueryValidationError
from queryrunner.functions import new_base_scope
from queryrunner.resolver import resolve
from queryrunner.runners import aws, default_registry
from queryrunner.runners.cloudwatch_logs_insights import CloudWatchLogsInsightsRunner

CONFIG = """\
query_runner:
  cloudwatch_logs_insights:
    default:
      region: ap-northeast-1

query:
  lambda_errors:
    runner: ${query_runner.cloudwatch_logs_insights.default}
    description: errors of one function
    log_group_names: ["/aws/lambda/${var.function}"]
    query: fields @timestamp, @message | limit ${var.limit}
    start_time: 1000
    end_time: 2000
    limit: 100
    ignore_fields: ["@logStream"]

  all_lambdas:
    runner: ${query_runner.cloudwatch_logs_insights.default}
    log_group_names: ${var.groups}
    query: fields @message
"""

COMPLETE = {
    "status": "Complete",
    "results": [
        [
            {"field": "@timestamp", "value": "2024-01-01 00:00:00.000"},
            {"field": "@message", "value": "ERROR boom"},
            {"field": "@logStream", "value": "stream"},
            {"field": "@ptr", "value": "pointer"},
        ],
        [
            {"field": "@timestamp", "value": "2024-01-01 00:00:01.000"},
            {"field": "@requestId", "value": "req"},
            {"field": "@ptr", "value": "pointer"},
        ],
    ],
    "statistics": {"bytesScanned": 10.0, "recordsMatched": 2.0, "recordsScanned": 5.0},
}


@pytest.fixture
def client():
    client = MagicMock()
    client.start_query.return_value = {"queryId": "query-1"}
    return client


@pytest.fixture
def factory_calls():
    return []


@pytest.fixture
def resolution(client, factory_calls):
    def client_factory(service_name, region):
        factory_calls.append((service_name, region))
        return client

    document, _ = parse_document(CONFIG)
    resolution = resolve(document, new_base_scope(), default_registry(client_factory))
    assert not resolution.diagnostics, resolution.diagnostics

    runner = resolution.runners.get("cloudwatch_logs_insights", "default")
    runner.MIN_DELAY = 0.001
    runner.MAX_DELAY = 0.001
    runner.JITTER = 0.0
    return resolution


def resolve_errors(text):
    document, _ = parse_document(text)
    registry = default_registry(lambda service_name, region: MagicMock())
    return resolve(document, new_base_scope(), registry).diagnostics


class TestPrepare:
    def test_prepared(self, resolution):
        query = resolution.queries.get("lambda_errors")
        assert query.runner_type == "cloudwatch_logs_insights"
        assert query.description == "errors of one function"
        assert query.limit == 100
        assert query.ignore_fields == ("@logStream",)

    def test_client_is_created_lazily(self, resolution, factory_calls):
        runner = resolution.runners.get("cloudwatch_logs_insights", "default")
        assert isinstance(runner, CloudWatchLogsInsightsRunner)
        assert factory_calls == []

        runner.client
        runner.client
        assert factory_calls == [("logs", "ap-northeast-1")]

    def test_missing_required_attributes(self):
        diags = resolve_errors(
            "query_runner:\n"
            "  cloudwatch_logs_insights:\n"
            "    default: {}\n"
            "query:\n"
            "  q:\n"
            "    runner: ${query_runner.cloudwatch_logs_insights.default}\n"
            "    query: fields @message\n"
        )
        assert [d.summary for d in diags] == ["Missing required argument"]
        assert '"log_group_names"' in diags[0].detail

    def test_unsupported_attribute(self):
        diags = resolve_errors(
            "query_runner:\n"
            "  cloudwatch_logs_insights:\n"
            "    default: {}\n"
            "query:\n"
            "  q:\n"
            "    runner: ${query_runner.cloudwatch_logs_insights.default}\n"
            "    query: fields @message\n"
            "    log_group_names: [a]\n"
            "    sql: SELECT 1\n"
        )
        assert [d.summary for d in diags] == ["Unsupported argument"]

    def test_limit_must_be_number(self):
        diags = resolve_errors(
            "query_runner:\n"
            "  cloudwatch_logs_insights:\n"
            "    default: {}\n"
            "query:\n"
            "  q:\n"
            "    runner: ${query_runner.cloudwatch_logs_insights.default}\n"
            "    query: fields @message\n"
            "    log_group_names: [a]\n"
            "    limit: many\n"
        )
        assert [d.summary for d in diags] == ["Incorrect attribute value type"]

    def test_null_query(self):
        diags = resolve_errors(
            "query_runner:\n"
            "  cloudwatch_logs_insights:\n"
            "    default: {}\n"
            "query:\n"
            "  q:\n"
            "    runner: ${query_runner.cloudwatch_logs_insights.default}\n"
            "    query: null\n"
            "    log_group_names: [a]\n"
        )
        assert [d.summary for d in diags] == ["Invalid query template"]

    def test_unknown_runner_attribute(self):
        diags = resolve_errors(
            "query_runner:\n  cloudwatch_logs_insights:\n    default:\n      regoin: x\n"
        )
        assert [d.summary for d in diags] == ["Unsupported argument"]


class TestBuildParams:
    def test_single_log_group(self, resolution):
        query = resolution.queries.get("lambda_errors")
        scope = query.base.new_scope({"var": {"function": "api", "limit": 5}})

        params = query.build_params(scope)

        assert params == {
            "startTime": 1000,
            "endTime": 2000,
            "queryString": "fields @timestamp, @message | limit 5",
            "limit": 100,
            "logGroupName": "/aws/lambda/api",
        }

    def test_several_log_groups_and_default_time_range(self, resolution):
        query = resolution.queries.get("all_lambdas")
        scope = query.base.new_scope({"var": {"groups": ["/a", "/b"]}})

        params = query.build_params(scope)

        assert params["logGroupNames"] == ["/a", "/b"]
        assert "logGroupName" not in params
        assert "limit" not in params
        assert params["endTime"] - params["startTime"] in (899, 900, 901)

    @pytest.mark.parametrize(
        "groups,detail",
        [
            (1, "log_group_names is must string list"),
            (["/a", 2], "log_group_names is must string list"),
            ([], "missing log_group_names"),
        ],
    )
    def test_invalid_log_group_names(self, resolution, groups, detail):
        query = resolution.queries.get("all_lambdas")
        with pytest.raises(QueryValidationError) as exc_info:
            query.build_params(query.base.new_scope({"var": {"groups": groups}}))
        assert exc_info.value.diagnostics[0].detail == detail

    def test_unknown_variable(self, resolution):
        query = resolution.queries.get("lambda_errors")
        with pytest.raises(QueryValidationError) as exc_info:
            query.build_params(query.base.new_scope({"var": {}}))
        assert exc_info.value.diagnostics[0].summary == "Unsupported attribute"


class TestRun:
    @pytest.mark.asyncio
    async def test_polls_until_complete(self, resolution, client):
        client.get_query_results.side_effect = [
            {"status": "Scheduled"},
            {"status": "Running"},
            COMPLETE,
        ]
        query = resolution.queries.get("lambda_errors")

        result = await query.run({"var": {"function": "api", "limit": 5}})

        assert result.name == "lambda_errors"
        assert result.query == "fields @timestamp, @message | limit 5"
        assert result.columns == ("@timestamp", "@message", "@requestId")
        assert result.rows == (
            ("2024-01-01 00:00:00.000", "ERROR boom", ""),
            ("2024-01-01 00:00:01.000", "", "req"),
        )
        assert client.get_query_results.call_count == 3
        client.get_query_results.assert_called_with(queryId="query-1")
        client.start_query.assert_called_once_with(
            startTime=1000,
            endTime=2000,
            queryString="fields @timestamp, @message | limit 5",
            limit=100,
            logGroupName="/aws/lambda/api",
        )
        client.stop_query.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_status(self, resolution, client):
        client.get_query_results.return_value = {"status": "Failed"}
        query = resolution.queries.get("all_lambdas")

        with pytest.raises(BackendError, match="get query result unknown status: Failed"):
            await query.run({"var": {"groups": ["/a"]}})

    @pytest.mark.asyncio
    async def test_start_query_failure(self, resolution, client):
        client.start_query.side_effect = RuntimeError("AccessDenied")
        query = resolution.queries.get("all_lambdas")

        with pytest.raises(BackendError, match="start_query: AccessDenied"):
            await query.run({"var": {"groups": ["/a"]}})

    @pytest.mark.asyncio
    async def test_timeout_stops_query(self, resolution, client):
        client.get_query_results.return_value = {"status": "Running"}
        runner = resolution.runners.get("cloudwatch_logs_insights", "default")
        runner.TIMEOUT = 0.05
        query = resolution.queries.get("all_lambdas")

        with pytest.raises(QueryTimeoutError, match="wait query result timeout"):
            await query.run({"var": {"groups": ["/a"]}})

        client.stop_query.assert_called_once_with(queryId="query-1")

    @pytest.mark.asyncio
    async def test_cancel_stops_query(self, resolution, client):
        client.get_query_results.return_value = {"status": "Running"}
        query = resolution.queries.get("all_lambdas")

        task = asyncio.create_task(query.run({"var": {"groups": ["/a"]}}))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        client.stop_query.assert_called_once_with(queryId="query-1")

    @pytest.mark.asyncio
    async def test_cancel_during_start_query_stops_it(self, resolution, client):
        def slow_start(**params):
            time.sleep(0.2)
            return {"queryId": "query-1"}

        client.start_query.side_effect = slow_start
        query = resolution.queries.get("all_lambdas")

        task = asyncio.create_task(query.run({"var": {"groups": ["/a"]}}))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        client.stop_query.assert_called_once_with(queryId="query-1")
        client.get_query_results.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_gives_up_on_a_hanging_start_query(self, resolution, client, monkeypatch):
        monkeypatch.setattr(aws, "CANCEL_TIMEOUT", 0.05)

        def hanging_start(**params):
            time.sleep(0.5)
            return {"queryId": "query-1"}

        client.start_query.side_effect = hanging_start
        query = resolution.queries.get("all_lambdas")

        task = asyncio.create_task(query.run({"var": {"groups": ["/a"]}}))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        client.stop_query.assert_not_called()

    @pytest.mark.asyncio
    async def test_validation_happens_before_any_call(self, resolution, client):
        query = resolution.queries.get("all_lambdas")

        with pytest.raises(QueryValidationError):
            await query.run({"var": {"groups": "not a list"}})

        client.start_query.assert_not_called()
