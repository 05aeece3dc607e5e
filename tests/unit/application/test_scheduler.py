"""Unit tests for the periodic job scheduler."""

from __future__ import annotations

import asyncio

import pytest

from taskbroker.application.scheduler import (
    APSchedulerAdapter,
    InMemoryScheduler,
    Job,
    Scheduler,
    run_job,
)


def _job(job_id: str = "j1", handler=None, interval: float = 30.0, enabled: bool = True) -> Job:
    async def _noop() -> None:
        return None

    return Job(id=job_id, name=job_id, handler=handler or _noop, interval_seconds=interval, enabled=enabled)


# ---------------------------------------------------------------------------
# Job / run_job
# ---------------------------------------------------------------------------


class TestJob:
    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            _job(interval=0)

    def test_enabled_by_default(self) -> None:
        assert _job().enabled is True


class TestRunJob:
    def test_success(self) -> None:
        calls: list[int] = []

        async def handler() -> None:
            calls.append(1)

        event = asyncio.run(run_job(_job(handler=handler)))
        assert calls == [1]
        assert event.success
        assert event.job_id == "j1"
        assert event.duration_ms >= 0

    def test_failure_is_captured(self) -> None:
        async def handler() -> None:
            raise RuntimeError("broker unreachable")

        event = asyncio.run(run_job(_job(handler=handler)))
        assert not event.success
        assert event.error == "broker unreachable"
        assert event.error_type == "RuntimeError"


# ---------------------------------------------------------------------------
# InMemoryScheduler
# ---------------------------------------------------------------------------


class TestInMemoryScheduler:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryScheduler(), Scheduler)

    def test_add_remove_list(self) -> None:
        s = InMemoryScheduler()
        s.add_job(_job("a"))
        s.add_job(_job("b"))
        s.remove_job("a")
        s.remove_job("missing")
        assert [j.id for j in s.list_jobs()] == ["b"]

    def test_start_stop(self) -> None:
        s = InMemoryScheduler()
        asyncio.run(s.start())
        assert s.is_running
        asyncio.run(s.stop())
        assert not s.is_running

    def test_trigger_runs_handler_and_logs(self) -> None:
        calls: list[str] = []

        async def handler() -> None:
            calls.append("ran")

        s = InMemoryScheduler()
        s.add_job(_job("tick", handler=handler))
        event = asyncio.run(s.trigger("tick"))
        assert calls == ["ran"]
        assert s.execution_log == [event]

    def test_trigger_unknown_job(self) -> None:
        with pytest.raises(KeyError):
            asyncio.run(InMemoryScheduler().trigger("nope"))

    def test_tick_runs_enabled_jobs_in_order(self) -> None:
        calls: list[str] = []

        def recorder(name: str):
            async def handler() -> None:
                calls.append(name)

            return handler

        s = InMemoryScheduler()
        s.add_job(_job("first", handler=recorder("first")))
        s.add_job(_job("off", handler=recorder("off"), enabled=False))
        s.add_job(_job("second", handler=recorder("second")))
        events = asyncio.run(s.tick())
        assert calls == ["first", "second"]
        assert [e.job_id for e in events] == ["first", "second"]


# ---------------------------------------------------------------------------
# APSchedulerAdapter
# ---------------------------------------------------------------------------


class TestAPSchedulerAdapter:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(APSchedulerAdapter(), Scheduler)

    def test_runs_interval_job(self) -> None:
        calls: list[int] = []

        async def handler() -> None:
            calls.append(1)

        async def scenario() -> None:
            s = APSchedulerAdapter()
            s.add_job(_job("tick", handler=handler, interval=0.05))
            await s.start()
            assert s.is_running
            await asyncio.sleep(0.3)
            await s.stop()
            assert not s.is_running

        asyncio.run(scenario())
        assert calls

    def test_disabled_job_is_not_run(self) -> None:
        calls: list[int] = []

        async def handler() -> None:
            calls.append(1)

        async def scenario() -> None:
            s = APSchedulerAdapter()
            s.add_job(_job("off", handler=handler, interval=0.05, enabled=False))
            await s.start()
            await asyncio.sleep(0.2)
            await s.stop()

        asyncio.run(scenario())
        assert calls == []

    def test_remove_job_while_running(self) -> None:
        async def scenario() -> list[str]:
            s = APSchedulerAdapter()
            await s.start()
            s.add_job(_job("late"))
            s.remove_job("late")
            s.remove_job("never-added")
            ids = [j.id for j in s.list_jobs()]
            await s.stop()
            return ids

        assert asyncio.run(scenario()) == []

    def test_stop_without_start_is_noop(self) -> None:
        asyncio.run(APSchedulerAdapter().stop())
