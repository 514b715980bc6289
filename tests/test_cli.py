"""
CLI commands and server startup, driven against the in-memory service.
"""

import json

import pytest

from episode_graph.cli.main import _with_service, app
from episode_graph.errors import PersistenceError
from episode_graph.knowledge_graph.service import KnowledgeGraphService
from episode_graph.mcp_server.server import serve


@pytest.fixture
def patched_service(monkeypatch, service):
    monkeypatch.setattr(KnowledgeGraphService, "from_settings", classmethod(lambda cls, cfg: service))
    return service


class TestStartupFailure:
    async def test_serve_closes_resources_when_initialize_fails(self, patched_service, store):
        store.fail_on.add("connect")

        with pytest.raises(PersistenceError):
            await serve(None)

        assert store.calls == ["connect", "close"]

    async def test_with_service_closes_resources_when_initialize_fails(self, patched_service, store):
        store.fail_on.add("ensure_schema")

        async def _never(service):
            raise AssertionError("command ran without an initialized service")

        with pytest.raises(PersistenceError):
            await _with_service(None, _never)

        assert store.calls == ["connect", "ensure_schema", "close"]

    def test_app_reports_failure_with_exit_code(self, patched_service, store, capsys):
        store.fail_on.add("connect")

        with pytest.raises(SystemExit) as exc:
            app(["search", "John"])

        assert exc.value.code == 1
        assert "search failed: connect failed" in capsys.readouterr().err
        assert store.calls[-1] == "close"


class TestSearchCommand:
    def test_json_output(self, patched_service, store, node_factory, capsys):
        node = node_factory("John Doe", node_type="person", summary="Software engineer")
        store.nodes[node.id] = node

        with pytest.raises(SystemExit) as exc:
            app(["search", "John", "--type", "keyword", "--json"])

        assert exc.value.code == 0
        out = json.loads(capsys.readouterr().out)
        assert out == [
            {
                "score": 1.0,
                "content": "John Doe (person): Software engineer",
                "node": node.to_dict(),
                "edge": None,
            }
        ]

    def test_text_output(self, patched_service, store, node_factory, capsys):
        node = node_factory("Microsoft", node_type="company")
        store.nodes[node.id] = node

        with pytest.raises(SystemExit):
            app(["search", "micro", "--type", "keyword"])

        assert capsys.readouterr().out.startswith('Found 1 results for query "micro":')
