"""Tests for the interval poller and the worker supervisor."""

import threading
from unittest.mock import MagicMock, call

from app.poller import IntervalPoller
from services.processing_worker.run import ReleaseProcessingScheduler
from services.supervisor.run import WorkerSupervisor, build_supervisor
from services.upload_worker.run import UploadJobScheduler


class TestIntervalPoller:
    """Tests for IntervalPoller."""

    def test_ticks_until_stopped(self):
        ticked = threading.Event()
        poller = IntervalPoller("test-poller", 0.01, ticked.set)

        assert poller.start() is True
        assert ticked.wait(timeout=5)
        poller.stop(timeout=5)

        assert poller.is_running is False

    def test_start_twice_is_rejected(self):
        poller = IntervalPoller("test-poller", 60, lambda: None)
        try:
            assert poller.start() is True
            assert poller.start() is False
            assert poller.is_running is True
        finally:
            poller.stop(timeout=5)

    def test_stop_when_not_running_is_noop(self):
        poller = IntervalPoller("test-poller", 60, lambda: None)
        poller.stop()
        assert poller.is_running is False

    def test_tick_exception_does_not_stop_loop(self):
        calls = []
        second_tick = threading.Event()

        def tick():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first tick fails")
            second_tick.set()

        poller = IntervalPoller("test-poller", 0.01, tick)
        poller.start()
        try:
            assert second_tick.wait(timeout=5)
        finally:
            poller.stop(timeout=5)

    def test_stop_waits_for_in_flight_tick(self):
        """stop() lets a running tick finish instead of interrupting it."""
        started = threading.Event()
        finished = threading.Event()

        def slow_tick():
            started.set()
            threading.Event().wait(0.2)
            finished.set()

        poller = IntervalPoller("test-poller", 0.01, slow_tick)
        poller.start()
        assert started.wait(timeout=5)
        poller.stop(timeout=5)

        assert finished.is_set()

    def test_restart_during_in_flight_tick_keeps_one_loop(self):
        """A restart after a timed-out stop never runs two ticks at once."""
        lock = threading.Lock()
        active = [0]
        peak = [0]
        calls = []
        first_started = threading.Event()
        release_first = threading.Event()
        later_tick = threading.Event()

        def tick():
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
                calls.append(1)
                first = len(calls) == 1
            try:
                if first:
                    first_started.set()
                    release_first.wait(timeout=5)
                else:
                    later_tick.set()
            finally:
                with lock:
                    active[0] -= 1

        poller = IntervalPoller("restart-poller", 0.01, tick)
        poller.start()
        assert first_started.wait(timeout=5)

        poller.stop(timeout=0.01)
        assert poller.start() is True
        # The new loop holds back while the old tick is still running
        threading.Event().wait(0.1)
        assert len(calls) == 1

        release_first.set()
        assert later_tick.wait(timeout=5)
        poller.stop(timeout=5)

        assert peak[0] == 1
        alive = [t for t in threading.enumerate() if t.name == "restart-poller"]
        assert alive == []

    def test_can_restart_after_stop(self):
        ticked = threading.Event()
        poller = IntervalPoller("test-poller", 0.01, ticked.set)
        poller.start()
        poller.stop(timeout=5)
        ticked.clear()

        assert poller.start() is True
        try:
            assert ticked.wait(timeout=5)
        finally:
            poller.stop(timeout=5)


class TestSchedulerLifecycle:
    """Start/stop of the schedulers over their pollers."""

    def test_upload_scheduler_start_stop(self, gateway, store):
        scheduler = UploadJobScheduler(gateway, store, poll_interval_seconds=60)

        assert scheduler.start() is True
        assert scheduler.is_running
        scheduler.stop(timeout=5)
        assert not scheduler.is_running

    def test_processing_scheduler_start_twice(self, gateway):
        scheduler = ReleaseProcessingScheduler(gateway, poll_interval_seconds=60)
        try:
            assert scheduler.start() is True
            assert scheduler.start() is False
        finally:
            scheduler.stop(timeout=5)


class TestWorkerSupervisor:
    """Tests for WorkerSupervisor."""

    def test_start_order(self):
        parent = MagicMock()
        supervisor = WorkerSupervisor(parent.upload, parent.processing)

        supervisor.start_all()

        assert parent.mock_calls == [call.upload.start(), call.processing.start()]

    def test_stop_all_stops_both_with_timeout(self):
        parent = MagicMock()
        supervisor = WorkerSupervisor(parent.upload, parent.processing, stop_timeout_seconds=3)

        supervisor.stop_all()

        assert parent.mock_calls == [
            call.upload.stop(timeout=3),
            call.processing.stop(timeout=3),
        ]

    def test_build_supervisor_runs_real_schedulers(self, session_factory, store):
        supervisor = build_supervisor(session_factory, store)

        assert isinstance(supervisor.upload_scheduler, UploadJobScheduler)
        assert isinstance(supervisor.processing_scheduler, ReleaseProcessingScheduler)

        supervisor.start_all()
        try:
            assert supervisor.upload_scheduler.is_running
            assert supervisor.processing_scheduler.is_running
        finally:
            supervisor.stop_all()

        assert not supervisor.upload_scheduler.is_running
        assert not supervisor.processing_scheduler.is_running
