"""
Tests for the HTTP service.
"""

import pytest
from fastapi.testclient import TestClient

from queryrunner.app.dependencies import load_resolution
from queryrunner.app.main import create_app
from queryrunner.config.settings import AppSettings
from queryrunner.errors import ConfigurationError
from queryrunner.resolver import load

CONFIG = """\
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

  backend_down:
    runner: ${query_runner.dummy.default}
    rows: []
    error: backend

  too_slow:
    runner: ${query_runner.dummy.default}
    rows: []
    error: timeout
"""


@pytest.fixture
def client(write_config, dummy_registry):
    resolution = load(write_config(CONFIG), dummy_registry).raise_for_errors()
    app = create_app(resolution=resolution, settings=AppSettings(service_name="test-runner"))
    with TestClient(app) as client:
        yield client


class TestRoot:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "test-runner"
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.json() == {"status": "healthy", "runners": 1, "queries": 3}

    def test_not_loaded(self):
        client = TestClient(create_app(settings=AppSettings()))
        assert client.get("/health").status_code == 503


class TestQueries:
    def test_list(self, client):
        response = client.get("/api/v1/queries")

        assert response.status_code == 200
        assert response.json()["queries"][0] == {
            "name": "hoge",
            "runner_type": "dummy",
            "description": "hoge query",
        }

    def test_run(self, client):
        response = client.post(
            "/api/v1/queries/run",
            json={"queries": ["hoge"], "variables": {"x": "1"}},
            headers={"X-Request-Id": "req-1"},
        )

        assert response.status_code == 200
        (result,) = response.json()["results"]
        assert result["name"] == "hoge"
        assert result["columns"] == ["a", "b"]
        assert result["rows"] == [["1", "2"]]
        assert result["records"] == [{"a": "1", "b": "2"}]

    def test_unknown_query(self, client):
        response = client.post("/api/v1/queries/run", json={"queries": ["hoge", "piyo"]})

        assert response.status_code == 404
        assert response.json()["error"] == "query `piyo` is not found"

    def test_validation_error(self, client):
        response = client.post("/api/v1/queries/run", json={"queries": ["hoge"]})

        assert response.status_code == 422
        (diag,) = response.json()["diagnostics"]
        assert diag["severity"] == "error"
        assert diag["summary"] == "Unsupported attribute"
        assert "config.yaml:11," in diag["subject"]

    def test_backend_error(self, client):
        response = client.post("/api/v1/queries/run", json={"queries": ["backend_down"]})

        assert response.status_code == 502
        assert response.json()["error"] == "dummy backend failed"

    def test_timeout(self, client):
        response = client.post("/api/v1/queries/run", json={"queries": ["too_slow"]})

        assert response.status_code == 504
        assert response.json()["error"] == "dummy query timeout"

    def test_bad_request_body(self, client):
        response = client.post("/api/v1/queries/run", json={"queries": "hoge"})
        assert response.status_code == 422


class TestLoadResolution:
    def test_loads_built_in_runners(self, write_config):
        path = write_config(
            "query_runner:\n"
            "  redshift_data:\n"
            "    default:\n"
            "      secrets_arn: arn\n"
            "query:\n"
            "  q:\n"
            "    runner: ${query_runner.redshift_data.default}\n"
            "    sql: SELECT 1\n"
        )

        resolution = load_resolution(AppSettings(config_path=str(path)))

        assert resolution.queries.names == ["q"]

    def test_errors_raise(self, write_config):
        path = write_config("query:\n  q:\n    sql: SELECT 1\n")

        with pytest.raises(ConfigurationError):
            load_resolution(AppSettings(config_path=str(path)))
