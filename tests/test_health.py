"""Tests for bot.health.HealthServer."""

import aiohttp
from aiohttp.test_utils import TestClient, TestServer

from forum_bridge.bot.health import HealthServer


class _Flag:
    def __init__(self, value=False):
        self.value = value

    def __call__(self):
        return self.value


async def _get(server: HealthServer, path: str):
    async with TestClient(TestServer(server.build_app())) as client:
        response = await client.get(path)
        return response.status, await response.json()


class TestProbes:
    async def test_liveness(self):
        for path in ("/health", "/api/health"):
            status, body = await _get(HealthServer(0, _Flag()), path)
            assert status == 200
            assert body["status"] == "ok"
            assert "timestamp" in body

    async def test_not_ready_until_connected(self):
        for path in ("/ready", "/api/ready"):
            status, body = await _get(HealthServer(0, _Flag(False)), path)
            assert status == 503
            assert body["status"] == "not_ready"
            assert body["discord_connected"] is False

    async def test_ready_when_connected(self):
        status, body = await _get(HealthServer(0, _Flag(True)), "/ready")
        assert status == 200
        assert body["status"] == "ready"
        assert body["discord_connected"] is True

    async def test_unknown_path(self):
        async with TestClient(TestServer(HealthServer(0, _Flag()).build_app())) as client:
            response = await client.get("/metrics")
            assert response.status == 404


class TestLifecycle:
    async def test_start_and_stop(self, unused_tcp_port):
        flag = _Flag(True)
        server = HealthServer(unused_tcp_port, flag, host="127.0.0.1")
        await server.start()
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"http://127.0.0.1:{unused_tcp_port}/ready"
                ) as response:
                    assert response.status == 200
        finally:
            await server.stop()

    async def test_stop_without_start(self):
        await HealthServer(0, _Flag()).stop()
