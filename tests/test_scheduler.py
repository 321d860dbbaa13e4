"""
Tests for the daily refresh scheduler.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from conftest import run

from storefront.core.scheduler import RefreshJob, RefreshScheduler, jobs_for


class RecordingComponent:
    def __init__(self, name, events, fail=False):
        self.name = name
        self.events = events
        self.fail = fail

    async def refresh(self):
        self.events.append(("refresh", self.name))
        if self.fail:
            raise RuntimeError(f"{self.name} down")

    async def clear(self):
        self.events.append(("clear", self.name))
        return 1


def make(events, failing=(), **kwargs):
    components = {
        name: RecordingComponent(name, events, fail=name in failing)
        for name in ("catalogue", "popular", "facets")
    }
    return RefreshScheduler(jobs_for(components), **kwargs)


class TestDailyTrigger:
    def test_next_run_at_configured_time(self):
        scheduler = make([], refresh_at="03:30")
        next_run = scheduler.next_run
        assert (next_run.hour, next_run.minute) == (3, 30)
        assert datetime.now() < next_run <= datetime.now() + timedelta(days=1)

    @pytest.mark.parametrize("value", ["3pm", "12:60", "", "noon"])
    def test_invalid_time(self, value):
        with pytest.raises(ValueError):
            make([], refresh_at=value)


class TestRefreshScheduler:
    def test_refresh_all_isolates_failures(self):
        events = []
        scheduler = make(events, failing={"popular"}, clock=lambda: datetime(2024, 5, 1, 3, 0))
        results = run(scheduler.refresh_all())
        assert results == {"catalogue": True, "popular": False, "facets": True}
        assert scheduler.last_results == results
        assert scheduler.last_run == datetime(2024, 5, 1, 3, 0)
        assert sorted(name for _, name in events) == ["catalogue", "facets", "popular"]

    def test_startup_clears_before_refreshing(self):
        events = []
        scheduler = make(events)
        run(scheduler.startup())
        kinds = [kind for kind, _ in events]
        assert kinds == ["clear"] * 3 + ["refresh"] * 3

    def test_clear_all(self):
        scheduler = make([])
        assert run(scheduler.clear_all()) == {"catalogue": 1, "popular": 1, "facets": 1}

    def test_background_loop_sleeps_until_due_then_refreshes(self):
        events = []
        delays = []

        async def scenario():
            blocker = asyncio.Event()
            holder = {}

            async def fake_sleep(seconds):
                delays.append(seconds)
                if len(delays) == 1:
                    # the wall clock "reaches" the refresh time
                    holder["scheduler"].daily_job.next_run = datetime.now() - timedelta(seconds=1)
                else:
                    await blocker.wait()

            scheduler = make(events, sleep=fake_sleep)
            holder["scheduler"] = scheduler
            assert not scheduler.running
            scheduler.start()
            for _ in range(10):
                await asyncio.sleep(0)
            running = scheduler.running
            next_run = scheduler.next_run
            await scheduler.stop()
            return running, scheduler.running, next_run

        running, stopped, next_run = run(scenario())
        assert running is True
        assert stopped is False
        assert 0 < delays[0] <= 24 * 60 * 60
        assert [kind for kind, _ in events] == ["refresh"] * 3
        # rescheduled for the following day once the job ran
        assert next_run > datetime.now()

    def test_not_due_does_not_refresh(self):
        events = []

        async def scenario():
            blocker = asyncio.Event()
            calls = []

            async def fake_sleep(seconds):
                calls.append(seconds)
                if len(calls) > 1:
                    await blocker.wait()

            scheduler = make(events, sleep=fake_sleep)
            scheduler.start()
            for _ in range(10):
                await asyncio.sleep(0)
            await scheduler.stop()

        run(scenario())
        assert events == []

    def test_stop_without_start(self):
        run(make([]).stop())


class TestJobsFor:
    def test_builds_named_jobs(self):
        component = RecordingComponent("catalogue", [])
        jobs = jobs_for({"catalogue": component})
        assert jobs == [RefreshJob("catalogue", component.refresh, component.clear)]
