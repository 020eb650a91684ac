"""Integration tests for startup and shutdown through the app lifespan."""

import asyncio
import signal
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from tezos_indexer.core.config import Settings
from tezos_indexer.core.errors import StartupError
from tezos_indexer.main import create_app
from tezos_indexer.server import build_server
from tezos_indexer.services.data.mock_client import MockTzktClient


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestLifespan:
    @pytest.mark.asyncio
    async def test_service_start_and_stop(self, test_settings):
        app = create_app("service", test_settings)

        async with app.router.lifespan_context(app):
            assert app.state.health.is_ready
            poller = app.state.poller
            assert poller is not None
            await _wait_for(lambda: poller.is_running)
            assert poller.last_sync["mode"] == "historical"
            store = app.state.store

        assert app.state.health.is_shutting_down
        assert not app.state.health.is_ready
        assert not poller.is_running
        assert store.store.closed

    @pytest.mark.asyncio
    async def test_api_role_has_no_poller(self, test_settings):
        app = create_app("api", test_settings)

        async with app.router.lifespan_context(app):
            assert app.state.health.is_ready
            assert app.state.poller is None

    @pytest.mark.asyncio
    async def test_unreachable_database_fails_startup(self, tmp_path):
        settings = Settings(
            database={"impl": "psql", "url": f"sqlite+aiosqlite:///{tmp_path}/missing/dir/db.sqlite"},
            tzktapi={"impl": "mock"},
            metrics={"impl": "memory"},
        )
        app = create_app("service", settings)

        with pytest.raises(StartupError):
            async with app.router.lifespan_context(app):
                pass

        assert not app.state.health.is_ready
        assert app.state.poller is None

    @pytest.mark.asyncio
    async def test_backfill_then_serve(self, test_settings, make_delegation):
        """Delegations synced by the poller are served by the API in the same process."""
        source = MockTzktClient(
            [
                make_delegation(id=1, level=10, amount=1_000_000),
                make_delegation(id=2, level=11, amount=2_000_000),
                make_delegation(id=3, level=12, status="failed"),
            ]
        )
        app = create_app("service", test_settings)

        with patch("tezos_indexer.main.create_delegation_source", return_value=source):
            async with app.router.lifespan_context(app):
                store = app.state.store
                await _wait_for(lambda: app.state.poller.is_running)
                assert await store.count_delegations() == 2

                async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                    response = await ac.get("/xtz/delegations")
                    ready = await ac.get("/health/ready")

        assert response.status_code == 200
        assert [d["amount"] for d in response.json()["data"]] == [2.0, 1.0]
        assert ready.status_code == 200
        assert source.closed
        assert app.state.metrics.synced["repository"] == 2


class TestSignalShutdown:
    """SIGTERM handling ahead of uvicorn's connection drain."""

    @pytest.mark.asyncio
    async def test_signal_flips_health_and_stops_poller(self, test_settings):
        """Health checks return 503 and the poller stops while the server still answers."""
        app = create_app("service", test_settings)
        server = build_server(app, host="127.0.0.1", port=0, shutdown_timeout=5)

        async with app.router.lifespan_context(app):
            poller = app.state.poller
            await _wait_for(lambda: poller.is_running)

            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                server.handle_exit(signal.SIGTERM, None)
                live = await ac.get("/health/live")
                ready = await ac.get("/health/ready")
                await _wait_for(lambda: not poller.is_running)

            assert server.should_exit
            assert poller.is_stopping
            await poller.tick()
            assert not poller.cycle_in_flight

        assert live.status_code == 503
        assert ready.status_code == 503
        assert app.state.health.is_shutting_down

    @pytest.mark.asyncio
    async def test_signal_on_api_role(self, test_settings):
        app = create_app("api", test_settings)
        server = build_server(app, host="127.0.0.1", port=0, shutdown_timeout=5)

        async with app.router.lifespan_context(app):
            server.handle_exit(signal.SIGINT, None)

            assert app.state.health.is_shutting_down
            assert server.should_exit
