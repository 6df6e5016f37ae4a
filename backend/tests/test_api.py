"""调度器触发接口与健康检查测试。"""
import pytest


class TestSchedulerApi:
    @pytest.mark.asyncio
    async def test_status_start_stop(self, client):
        resp = await client.get("/api/v1/scheduler")
        assert resp.status_code == 200
        assert resp.json()["running"] is False

        resp = await client.post("/api/v1/scheduler/start")
        assert resp.status_code == 200
        assert resp.json()["running"] is True

        resp = await client.post("/api/v1/scheduler/stop")
        assert resp.json()["running"] is False

    @pytest.mark.asyncio
    async def test_run_host_now(self, client, make_host, make_test):
        host = await make_host(name="gateway")
        await make_test(host, "ping")

        resp = await client.post(f"/api/v1/scheduler/hosts/{host.id}/run")
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        assert body["results"][0]["host_name"] == "gateway"
        assert body["results"][0]["outcome"]["reachable"] is True

    @pytest.mark.asyncio
    async def test_run_missing_host(self, client):
        resp = await client.post("/api/v1/scheduler/hosts/404/run")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_run_all_now(self, client, make_host, make_test):
        await make_test(await make_host(name="a"), "ping")
        await make_test(await make_host(name="b"), "tcp", port=22)

        resp = await client.post("/api/v1/scheduler/run")
        assert resp.status_code == 200
        assert resp.json()["count"] == 2

    @pytest.mark.asyncio
    async def test_aggregate_now(self, client):
        resp = await client.post("/api/v1/scheduler/aggregate")
        assert resp.status_code == 200
        assert resp.json()["failed_steps"] == []


@pytest.mark.asyncio
async def test_health_reports_scheduler_state(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["checks"]["database"] == "ok"
    assert body["checks"]["scheduler"] == "stopped"
    assert body["status"] == "degraded"
