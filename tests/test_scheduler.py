"""Tests for RefreshScheduler: per-key isolation, lifecycle, shutdown."""

import asyncio

import pytest

from conftest import FakeFetcher, weather
from weatherfresh.core.cache import BoundedFreshCache
from weatherfresh.core.errors import ConfigError, ErrorKind, FetchResult
from weatherfresh.core.scheduler import RefreshScheduler, SchedulerState


def make_cache(*cities: str) -> BoundedFreshCache:
    cache = BoundedFreshCache(10, 600)
    for city in cities:
        cache.put(city, weather(city, temp=0.0))
    return cache


async def wait_for_passes(scheduler: RefreshScheduler, n: int, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while scheduler.passes < n:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


class TestConstruction:
    def test_rejects_non_positive_interval(self, fetcher: FakeFetcher) -> None:
        with pytest.raises(ConfigError):
            RefreshScheduler(make_cache(), fetcher, interval_s=0)

    def test_initial_state(self, fetcher: FakeFetcher) -> None:
        scheduler = RefreshScheduler(make_cache(), fetcher, interval_s=60)
        assert scheduler.state is SchedulerState.CREATED
        assert scheduler.passes == 0


class TestRefreshPass:
    @pytest.mark.asyncio
    async def test_failure_is_isolated_per_key(self) -> None:
        cache = make_cache("a", "b")
        fetcher = FakeFetcher({
            "a": FetchResult.failure(ErrorKind.NETWORK, "connection reset"),
            "b": weather("b", temp=25.0),
        })
        reported = []
        scheduler = RefreshScheduler(
            cache, fetcher, interval_s=60, reporter=lambda k, c: reported.append((k, c))
        )

        report = await scheduler.run_pass()

        assert report.refreshed == ["b"]
        assert report.failed == ["a"]
        assert cache.get("b").temperature.temp == 25.0
        assert cache.get("a").temperature.temp == 0.0
        assert [k for k, _ in reported] == ["a"]
        assert reported[0][1].kind is ErrorKind.NETWORK

    @pytest.mark.asyncio
    async def test_raising_fetcher_does_not_abort_pass(self) -> None:
        cache = make_cache("a", "b", "c")
        fetcher = FakeFetcher({
            "a": weather("a", 1.0),
            "b": RuntimeError("boom"),
            "c": weather("c", 3.0),
        })
        reported = []
        scheduler = RefreshScheduler(
            cache, fetcher, interval_s=60, reporter=lambda k, c: reported.append((k, c))
        )

        report = await scheduler.run_pass()

        assert report.refreshed == ["a", "c"]
        assert report.failed == ["b"]
        assert isinstance(reported[0][1], RuntimeError)

    @pytest.mark.asyncio
    async def test_raising_reporter_does_not_abort_pass(self) -> None:
        cache = make_cache("a", "b")
        fetcher = FakeFetcher({"b": weather("b", 9.0)})

        def bad_reporter(key, cause):
            raise ValueError("reporter down")

        scheduler = RefreshScheduler(cache, fetcher, interval_s=60, reporter=bad_reporter)
        report = await scheduler.run_pass()

        assert report.failed == ["a"]
        assert report.refreshed == ["b"]

    @pytest.mark.asyncio
    async def test_fetch_runs_without_cache_lock(self) -> None:
        cache = make_cache("a")

        class TouchingFetcher(FakeFetcher):
            async def fetch(self, key):
                # Would deadlock if the pass held the cache lock here.
                cache.put("other", weather("other"))
                assert cache.get("other") is not None
                return await super().fetch(key)

        scheduler = RefreshScheduler(cache, TouchingFetcher({"a": weather("a", 5.0)}), interval_s=60)
        report = await scheduler.run_pass()

        assert report.refreshed == ["a"]
        assert set(cache.keys()) == {"a", "other"}

    @pytest.mark.asyncio
    async def test_empty_cache_pass(self, fetcher: FakeFetcher) -> None:
        scheduler = RefreshScheduler(make_cache(), fetcher, interval_s=60)
        report = await scheduler.run_pass()
        assert report.refreshed == [] and report.failed == []
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_manual_pass_skipped_while_loop_pass_running(self) -> None:
        fetcher = FakeFetcher({"a": weather("a")})
        fetcher.gate = asyncio.Event()
        fetcher.entered = asyncio.Event()
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=3600, grace_s=1.0)
        scheduler.start()
        await asyncio.wait_for(fetcher.entered.wait(), 1.0)

        report = await asyncio.wait_for(scheduler.run_pass(), 1.0)

        assert report.skipped
        assert report.refreshed == [] and report.failed == []
        assert fetcher.calls == ["a"]
        fetcher.gate.set()
        await wait_for_passes(scheduler, 1)
        await scheduler.stop()
        assert fetcher.calls == ["a"]
        assert scheduler.passes == 1

    @pytest.mark.asyncio
    async def test_sequential_manual_passes_both_run(self) -> None:
        fetcher = FakeFetcher({"a": weather("a")})
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=60)
        first = await scheduler.run_pass()
        second = await scheduler.run_pass()
        assert not first.skipped and not second.skipped
        assert fetcher.calls == ["a", "a"]
        assert scheduler.passes == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_first_pass_runs_immediately(self) -> None:
        fetcher = FakeFetcher({"a": weather("a")})
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=3600)
        scheduler.start()
        await wait_for_passes(scheduler, 1)
        assert fetcher.calls == ["a"]
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_next_pass_still_runs_after_failures(self) -> None:
        fetcher = FakeFetcher({"b": weather("b")})
        scheduler = RefreshScheduler(make_cache("a", "b"), fetcher, interval_s=0.02)
        scheduler.start()
        await wait_for_passes(scheduler, 3)
        await scheduler.stop()
        assert fetcher.calls[:6] == ["a", "b", "a", "b", "a", "b"]

    @pytest.mark.asyncio
    async def test_double_start_runs_one_loop(self) -> None:
        fetcher = FakeFetcher({"a": weather("a")})
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=3600)
        scheduler.start()
        first_task = scheduler._task
        scheduler.start()
        assert scheduler._task is first_task
        await wait_for_passes(scheduler, 1)
        await asyncio.sleep(0.05)
        assert fetcher.calls == ["a"]
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_before_start(self, fetcher: FakeFetcher) -> None:
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=60)
        await asyncio.wait_for(scheduler.stop(), 1.0)
        assert scheduler.state is SchedulerState.STOPPED
        await asyncio.wait_for(scheduler.stop(), 1.0)

    @pytest.mark.asyncio
    async def test_stop_twice(self) -> None:
        scheduler = RefreshScheduler(make_cache(), FakeFetcher(), interval_s=60)
        scheduler.start()
        await asyncio.wait_for(scheduler.stop(), 1.0)
        await asyncio.wait_for(scheduler.stop(), 1.0)
        assert scheduler.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_no_restart_after_stop(self) -> None:
        fetcher = FakeFetcher({"a": weather("a")})
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=3600)
        await scheduler.stop()
        scheduler.start()
        await asyncio.sleep(0.05)
        assert scheduler.state is SchedulerState.STOPPED
        assert scheduler._task is None
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_stop_mid_pass_finishes_in_flight_fetch_only(self) -> None:
        fetcher = FakeFetcher({"a": weather("a"), "b": weather("b"), "c": weather("c")})
        fetcher.gate = asyncio.Event()
        fetcher.entered = asyncio.Event()
        scheduler = RefreshScheduler(make_cache("a", "b", "c"), fetcher, interval_s=0.01, grace_s=2.0)
        scheduler.start()
        await asyncio.wait_for(fetcher.entered.wait(), 1.0)

        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.02)
        fetcher.gate.set()
        await asyncio.wait_for(stopping, 2.0)

        assert fetcher.calls == ["a"]
        assert scheduler.passes == 1
        assert scheduler.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_force_cancels_after_grace(self) -> None:
        fetcher = FakeFetcher({"a": weather("a")})
        fetcher.gate = asyncio.Event()  # never set: fetch hangs
        fetcher.entered = asyncio.Event()
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=60, grace_s=0.05)
        scheduler.start()
        task = scheduler._task
        await asyncio.wait_for(fetcher.entered.wait(), 1.0)

        await asyncio.wait_for(scheduler.stop(), 1.0)

        assert task.cancelled()
        assert scheduler.passes == 0
        assert scheduler.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_start_from_another_thread_runs_on_owning_loop(self) -> None:
        loop = asyncio.get_running_loop()
        fetcher = FakeFetcher({"a": weather("a")})
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=3600)

        await asyncio.to_thread(scheduler.start, loop)

        assert scheduler.state is SchedulerState.RUNNING
        await wait_for_passes(scheduler, 1)
        assert fetcher.calls == ["a"]
        await scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED

    def test_start_without_loop_is_deferred(self, fetcher: FakeFetcher) -> None:
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=60)
        scheduler.start()
        assert scheduler.state is SchedulerState.CREATED
        assert scheduler._task is None

    @pytest.mark.asyncio
    async def test_cancelling_the_stop_caller_is_not_swallowed(self) -> None:
        class SlowToCancel(FakeFetcher):
            async def fetch(self, key):
                try:
                    return await super().fetch(key)
                except asyncio.CancelledError:
                    await asyncio.sleep(0.3)
                    raise

        fetcher = SlowToCancel({"a": weather("a")})
        fetcher.gate = asyncio.Event()  # never set
        fetcher.entered = asyncio.Event()
        scheduler = RefreshScheduler(make_cache("a"), fetcher, interval_s=60, grace_s=0.05)
        scheduler.start()
        task = scheduler._task
        await asyncio.wait_for(fetcher.entered.wait(), 1.0)

        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.15)  # grace elapsed, refresh task is winding down
        stopping.cancel()
        with pytest.raises(asyncio.CancelledError):
            await stopping

        await asyncio.wait({task}, timeout=1.0)
        assert task.cancelled()
