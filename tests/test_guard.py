"""
Sync Guard Tests

Tests for single-flight sending, completion handling and notifications.
"""

from concurrent.futures import Future

import pytest

from runesync.collection_log import CollectionLogManager
from runesync.config import Settings
from runesync.dispatch import QueueDispatcher
from runesync.guard import MSG_SYNC_FAILED, MSG_SYNC_SUCCESS, SyncGuard
from runesync.models import CollectionLogEntry, SyncTrigger
from runesync.rate_limit import RateLimiter
from runesync.snapshot import SnapshotBuilder
from runesync.sources import DataSources


@pytest.fixture
def dispatcher():
    return QueueDispatcher()


@pytest.fixture
def limiter(clock):
    return RateLimiter(ambient_interval=300.0, clock=clock)


@pytest.fixture
def make_guard(host, clock, transport, limiter, dispatcher):
    def factory(settings=None, transport_=None):
        sources = DataSources.from_host(host, CollectionLogManager(host, host), host.summary_scripts)
        return SyncGuard(
            settings=settings or Settings(_env_file=None),
            sources=sources,
            builder=SnapshotBuilder(clock=clock),
            transport=transport_ or transport,
            rate_limiter=limiter,
            dispatcher=dispatcher,
            notifier=host,
        )
    return factory


class TestSingleFlight:

    def test_request_dispatches_snapshot(self, make_guard, transport):
        guard = make_guard()
        assert guard.request_sync(SyncTrigger.AMBIENT) is True
        assert guard.in_flight is True
        assert len(transport.sent) == 1
        assert transport.sent[0].username == "Zezima"

    def test_second_request_dropped_while_in_flight(self, make_guard, transport):
        guard = make_guard()
        guard.request_sync(SyncTrigger.AMBIENT)
        assert guard.request_sync(SyncTrigger.MANUAL) is False
        assert guard.request_sync(SyncTrigger.AMBIENT) is False
        assert len(transport.sent) == 1

    def test_completion_runs_on_dispatch_loop(self, make_guard, transport, dispatcher, limiter, clock):
        guard = make_guard()
        guard.request_sync(SyncTrigger.AMBIENT)
        clock.advance(2)
        transport.complete(True)

        # Nothing changes until the loop drains
        assert guard.in_flight is True
        assert limiter.last_sync_at == 0.0
        assert dispatcher.pending == 1

        dispatcher.drain()
        assert guard.in_flight is False
        assert limiter.last_sync_at == clock.now
        assert guard.last_outcome.success is True
        assert guard.last_outcome.duration_seconds == pytest.approx(2.0)

    def test_new_request_allowed_after_completion(self, make_guard, transport, dispatcher):
        guard = make_guard()
        guard.request_sync(SyncTrigger.AMBIENT)
        transport.complete(True)
        dispatcher.drain()

        assert guard.request_sync(SyncTrigger.MANUAL) is True
        assert len(transport.sent) == 2

    def test_failed_send_still_records_attempt(self, make_guard, transport, dispatcher, limiter, clock):
        guard = make_guard()
        guard.request_sync(SyncTrigger.AMBIENT)
        transport.complete(False)
        dispatcher.drain()

        assert guard.in_flight is False
        assert limiter.last_sync_at == clock.now
        assert guard.last_outcome.success is False

    def test_future_exception_counts_as_failure(self, make_guard, transport, dispatcher):
        guard = make_guard()
        guard.request_sync(SyncTrigger.AMBIENT)
        transport.futures[-1].set_exception(RuntimeError("worker died"))
        dispatcher.drain()

        assert guard.in_flight is False
        assert guard.last_outcome.success is False

    def test_transport_raising_on_send(self, make_guard, dispatcher):
        class BrokenTransport:
            def send(self, snapshot):
                raise RuntimeError("executor shut down")

        guard = make_guard(transport_=BrokenTransport())
        assert guard.request_sync(SyncTrigger.AMBIENT) is True
        dispatcher.drain()
        assert guard.in_flight is False
        assert guard.last_outcome.success is False

    def test_captured_log_is_forwarded(self, make_guard, transport):
        guard = make_guard()
        captured = {995: CollectionLogEntry(obtained=True, count=3)}
        guard.request_sync(SyncTrigger.MANUAL, captured_log=captured)
        assert transport.sent[0].collection_log == {"995": CollectionLogEntry(obtained=True, count=3)}


class TestPreconditions:

    def test_no_identity_sends_nothing(self, make_guard, transport, host, limiter, dispatcher):
        host.name = None
        guard = make_guard()

        assert guard.request_sync(SyncTrigger.AMBIENT) is False
        assert guard.request_sync(SyncTrigger.MANUAL) is False
        assert transport.sent == []
        assert guard.in_flight is False
        assert limiter.last_sync_at == 0.0
        assert dispatcher.pending == 0

    def test_sync_disabled_blocks_ambient_only(self, make_guard, transport):
        guard = make_guard(settings=Settings(_env_file=None, enable_sync=False))
        assert guard.request_sync(SyncTrigger.AMBIENT) is False
        assert guard.request_sync(SyncTrigger.MANUAL) is True
        assert len(transport.sent) == 1

    def test_settings_callable_is_reread(self, make_guard, transport):
        current = {"settings": Settings(_env_file=None, enable_sync=False)}
        guard = make_guard(settings=lambda: current["settings"])
        assert guard.request_sync(SyncTrigger.AMBIENT) is False

        current["settings"] = Settings(_env_file=None)
        assert guard.request_sync(SyncTrigger.AMBIENT) is True

    def test_snapshot_respects_flags(self, make_guard, transport):
        guard = make_guard(settings=Settings(_env_file=None, sync_skills=False))
        guard.request_sync(SyncTrigger.AMBIENT)
        assert transport.sent[0].skills is None
        assert transport.sent[0].quests is not None


class TestNotifications:

    def _complete(self, guard, transport, dispatcher, trigger, result):
        guard.request_sync(trigger)
        transport.complete(result)
        dispatcher.drain()

    def test_manual_success(self, make_guard, transport, dispatcher, host):
        self._complete(make_guard(), transport, dispatcher, SyncTrigger.MANUAL, True)
        assert host.messages == [MSG_SYNC_SUCCESS]

    def test_manual_failure(self, make_guard, transport, dispatcher, host):
        self._complete(make_guard(), transport, dispatcher, SyncTrigger.MANUAL, False)
        assert host.messages == [MSG_SYNC_FAILED]

    def test_ambient_success_silent_by_default(self, make_guard, transport, dispatcher, host):
        self._complete(make_guard(), transport, dispatcher, SyncTrigger.AMBIENT, True)
        assert host.messages == []

    def test_ambient_success_notifies_when_enabled(self, make_guard, transport, dispatcher, host):
        guard = make_guard(settings=Settings(_env_file=None, show_sync_notification=True))
        self._complete(guard, transport, dispatcher, SyncTrigger.AMBIENT, True)
        assert host.messages == [MSG_SYNC_SUCCESS]

    def test_ambient_failure_is_silent(self, make_guard, transport, dispatcher, host):
        guard = make_guard(settings=Settings(_env_file=None, show_sync_notification=True))
        self._complete(guard, transport, dispatcher, SyncTrigger.AMBIENT, False)
        assert host.messages == []


class TestQueueDispatcher:

    def test_drain_runs_in_order(self):
        dispatcher = QueueDispatcher()
        calls = []
        dispatcher.invoke_later(lambda: calls.append(1))
        dispatcher.invoke_later(lambda: calls.append(2))
        assert dispatcher.drain() == 2
        assert calls == [1, 2]

    def test_callbacks_queued_while_draining_wait_for_next_drain(self):
        dispatcher = QueueDispatcher()
        calls = []

        def first():
            calls.append("first")
            dispatcher.invoke_later(lambda: calls.append("second"))

        dispatcher.invoke_later(first)
        assert dispatcher.drain() == 1
        assert calls == ["first"]
        assert dispatcher.drain() == 1
        assert calls == ["first", "second"]

    def test_failing_callback_does_not_stop_drain(self):
        dispatcher = QueueDispatcher()
        calls = []

        def explode():
            raise RuntimeError("boom")

        dispatcher.invoke_later(explode)
        dispatcher.invoke_later(lambda: calls.append("ok"))
        assert dispatcher.drain() == 2
        assert calls == ["ok"]

    def test_future_completed_on_other_thread(self, make_guard, transport, dispatcher):
        import threading

        guard = make_guard()
        guard.request_sync(SyncTrigger.AMBIENT)
        worker = threading.Thread(target=transport.complete)
        worker.start()
        worker.join()

        assert guard.in_flight is True
        dispatcher.drain()
        assert guard.in_flight is False


def test_resolved_future_still_defers_completion(make_guard, dispatcher):
    class InstantTransport:
        def send(self, snapshot):
            future = Future()
            future.set_result(True)
            return future

    guard = make_guard(transport_=InstantTransport())
    guard.request_sync(SyncTrigger.AMBIENT)
    assert guard.in_flight is True
    dispatcher.drain()
    assert guard.in_flight is False
