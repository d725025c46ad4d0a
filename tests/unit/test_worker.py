import pytest

from app.jobs import worker


class FakePool:
    def __init__(self):
        self.events = []

    async def initialize(self):
        self.events.append("initialize")

    async def close(self):
        self.events.append("close")


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}
    pool = FakePool()

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)
    monkeypatch.setattr(worker, "db_pool", pool)

    await worker.run_worker("dummy")

    assert called["ok"] is True
    assert pool.events == ["initialize", "close"]


@pytest.mark.asyncio
async def test_run_worker_closes_pool_when_job_fails(monkeypatch):
    pool = FakePool()

    async def failing_job():
        raise RuntimeError("boom")

    monkeypatch.setitem(worker.JOB_REGISTRY, "failing", failing_job)
    monkeypatch.setattr(worker, "db_pool", pool)

    with pytest.raises(RuntimeError):
        await worker.run_worker("failing")

    assert pool.events == ["initialize", "close"]


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_leak_monitor_is_the_default_job():
    assert worker.DEFAULT_JOB in worker.JOB_REGISTRY
