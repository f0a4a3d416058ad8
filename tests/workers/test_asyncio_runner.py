import pytest

from loyalty.workers import asyncio_runner


def _install_dispose_counter(monkeypatch) -> list[str]:
    calls: list[str] = []

    async def fake_dispose_engine() -> None:
        calls.append("dispose")

    monkeypatch.setattr(asyncio_runner, "dispose_engine", fake_dispose_engine)
    return calls


def test_run_async_job_disposes_pool_around_job(monkeypatch) -> None:
    calls = _install_dispose_counter(monkeypatch)

    async def job() -> int:
        calls.append("job")
        return 42

    assert asyncio_runner.run_async_job(job(), job_name="unit") == 42
    assert calls == ["dispose", "job", "dispose"]


def test_run_async_job_disposes_pool_when_job_fails(monkeypatch) -> None:
    calls = _install_dispose_counter(monkeypatch)

    async def job() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        asyncio_runner.run_async_job(job(), job_name="unit")
    assert calls == ["dispose", "dispose"]
