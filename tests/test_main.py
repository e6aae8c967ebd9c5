"""Tests for app wiring in switchboard.main."""

from httpx import ASGITransport, AsyncClient

from switchboard import main as main_module
from switchboard.api.rest import SESSION_HEADER
from switchboard.main import build_app
from switchboard.tools.registry import ToolRegistry
from tests.conftest import ScriptedGateway, make_settings


class FakeRemoteToolset:
    instances: list["FakeRemoteToolset"] = []

    def __init__(self, url: str, fail: bool = False) -> None:
        self.url = url
        self.fail = fail
        self.closed = False
        FakeRemoteToolset.instances.append(self)

    async def connect(self):
        if self.fail:
            raise ConnectionError("remote server unreachable")

    async def register_all(self, registry: ToolRegistry) -> int:
        registry.add("remoteEcho", "Echo", {"type": "object", "properties": {}}, self._echo)
        return 1

    async def close(self):
        self.closed = True

    async def _echo(self, args):
        return "echo"


class FailingRemoteToolset(FakeRemoteToolset):
    def __init__(self, url: str) -> None:
        super().__init__(url, fail=True)


class TestBuildApp:
    async def test_lifespan_freezes_registry(self):
        settings = make_settings()
        app = build_app(settings, gateway=ScriptedGateway())

        async with app.router.lifespan_context(app):
            registry = app.state.registry
            assert registry.frozen
            assert [s.name for s in registry.list()] == ["addTwoNumbers", "webSearch"]

    async def test_sessions_closed_on_shutdown(self):
        app = build_app(make_settings(json_response=True), gateway=ScriptedGateway())

        async with app.router.lifespan_context(app):
            async with AsyncClient(
                transport=ASGITransport(app=app),
                base_url="http://test",
                headers={"accept": "application/json, text/event-stream"},
            ) as client:
                resp = await client.post(
                    "/mcp",
                    json={
                        "jsonrpc": "2.0",
                        "id": 1,
                        "method": "initialize",
                        "params": {
                            "protocolVersion": "2025-03-26",
                            "capabilities": {},
                            "clientInfo": {"name": "t", "version": "1"},
                        },
                    },
                )
                assert SESSION_HEADER in resp.headers
            store = app.state.store
            session = store.get(resp.headers[SESSION_HEADER])
            assert len(store) == 1

        assert len(store) == 0
        assert session.transport.is_terminated

    async def test_remote_tools_merged(self, monkeypatch):
        FakeRemoteToolset.instances.clear()
        monkeypatch.setattr(main_module, "RemoteToolset", FakeRemoteToolset)
        app = build_app(make_settings(remote_tools_url="http://remote.test/mcp"), gateway=ScriptedGateway())

        async with app.router.lifespan_context(app):
            assert "remoteEcho" in app.state.registry

        assert FakeRemoteToolset.instances[0].closed

    async def test_unreachable_remote_is_not_fatal(self, monkeypatch):
        FakeRemoteToolset.instances.clear()
        monkeypatch.setattr(main_module, "RemoteToolset", FailingRemoteToolset)
        app = build_app(make_settings(remote_tools_url="http://remote.test/mcp"), gateway=ScriptedGateway())

        async with app.router.lifespan_context(app):
            registry = app.state.registry
            assert registry.frozen
            assert "remoteEcho" not in registry
            assert len(registry) == 2

        assert FakeRemoteToolset.instances[0].closed
