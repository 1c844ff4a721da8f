"""
Agent, Event Bus, Settings and CLI Tests
"""

import json
import logging
import threading
import time

import pytest
from pydantic import ValidationError

from runesync.agent import SyncAgent
from runesync.config import FeatureFlags, Settings
from runesync.dispatch import IntervalTimer, QueueDispatcher
from runesync.events import EventBus, GameStateChanged, GameTick, ManualSyncRequested, WidgetLoaded
from runesync.guard import MSG_SYNC_SUCCESS
from runesync.host import GameState
from runesync.main import main
from runesync.replay import RecordingTransport, StaticHost, decode_event, load_recording, replay
from runesync.triggers import MSG_SYNC_STARTED


class TestEventBus:

    def test_publish_reaches_subscriber(self):
        bus = EventBus()
        seen = []
        bus.subscribe(GameTick, seen.append)
        bus.publish(GameTick(1))
        assert seen == [GameTick(1)]

    def test_routing_is_by_exact_type(self):
        bus = EventBus()
        seen = []
        bus.subscribe(GameTick, seen.append)
        bus.publish(WidgetLoaded(621))
        assert seen == []

    def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        seen = []

        def explode(event):
            raise RuntimeError("boom")

        bus.subscribe(GameTick, explode)
        bus.subscribe(GameTick, seen.append)
        bus.publish(GameTick(7))
        assert seen == [GameTick(7)]

    def test_release_is_idempotent(self):
        bus = EventBus()
        subscription = bus.subscribe(GameTick, lambda e: None)
        subscription.release()
        subscription.release()
        assert subscription.active is False
        assert bus.subscriber_count(GameTick) == 0

    def test_subscription_context_manager(self):
        bus = EventBus()
        seen = []
        with bus.subscribe(GameTick, seen.append):
            bus.publish(GameTick(1))
        bus.publish(GameTick(2))
        assert seen == [GameTick(1)]


class TestIntervalTimer:

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            IntervalTimer(0, lambda: None, QueueDispatcher())

    def test_posts_to_dispatcher_until_stopped(self):
        dispatcher = QueueDispatcher()
        calls = []
        timer = IntervalTimer(0.01, lambda: calls.append(threading.current_thread()), dispatcher)
        timer.start()
        try:
            deadline = time.monotonic() + 2
            while dispatcher.pending == 0 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            timer.stop()

        assert timer.is_running is False
        # Callbacks never run on the timer thread
        assert calls == []
        dispatcher.drain()
        assert calls and all(thread is threading.current_thread() for thread in calls)


class TestSettings:

    def test_defaults(self, settings):
        assert settings.enable_sync is True
        assert settings.sync_interval_minutes == 5
        assert settings.sync_interval_seconds == 300.0
        assert settings.show_sync_notification is False
        assert settings.flags() == FeatureFlags()

    @pytest.mark.parametrize("minutes", [0, 61])
    def test_interval_range(self, minutes):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, sync_interval_minutes=minutes)

    def test_endpoint_must_be_http(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, api_endpoint="ftp://example.test")

    def test_log_level_normalized(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("RUNESYNC_SYNC_INTERVAL_MINUTES", "10")
        monkeypatch.setenv("RUNESYNC_SYNC_EQUIPMENT", "false")
        settings = Settings(_env_file=None)
        assert settings.sync_interval_minutes == 10
        assert settings.flags().equipment is False

    def test_settings_are_frozen(self, settings):
        with pytest.raises(ValidationError):
            settings.enable_sync = False


class FakeButton:
    def __init__(self):
        self.on_click = None
        self.released = False

    def register(self, on_click):
        self.on_click = on_click
        return self

    def release(self):
        self.released = True


class TestSyncAgent:

    @pytest.fixture
    def button(self):
        return FakeButton()

    @pytest.fixture
    def agent(self, host, settings, transport, clock, button):
        agent = SyncAgent(
            host,
            settings=settings,
            transport=transport,
            ui_trigger=button,
            clock=clock,
            wall_clock_timer=False,
            summary_scripts=host.summary_scripts,
        )
        yield agent
        agent.shutdown()

    def test_context_manager_lifecycle(self, agent, button):
        with agent:
            assert agent.running is True
            assert button.on_click is not None
        assert agent.running is False
        assert button.released is True
        assert agent.bus.subscriber_count() == 0

    def test_button_click_marshals_manual_sync(self, agent, button, transport, host, clock):
        agent.start()
        agent.publish(GameStateChanged(GameState.LOGGED_IN))
        agent.pump()
        transport.complete(True)
        agent.pump()
        clock.advance(31)

        button.on_click()
        assert host.messages == []
        agent.pump()

        assert host.messages == [MSG_SYNC_STARTED]
        assert len(transport.sent) == 2

    def test_status(self, agent, transport):
        agent.start()
        status = agent.get_status()
        assert status["running"] is True
        assert status["logged_in"] is False
        assert status["last_outcome"] is None

        agent.publish(GameStateChanged(GameState.LOGGED_IN))
        agent.pump()
        assert agent.get_status()["in_flight"] is True

        transport.complete(True)
        agent.pump()
        outcome = agent.get_status()["last_outcome"]
        assert outcome["trigger"] == "ambient"
        assert outcome["success"] is True
        assert outcome["username"] == "Zezima"

    def test_wall_clock_timer_created_from_settings(self, host, transport):
        settings = Settings(_env_file=None, wall_clock_check_seconds=30)
        agent = SyncAgent(host, settings=settings, transport=transport)
        assert agent._timer.interval == 30
        agent.shutdown()


class TestReplay:

    def test_decode_unknown_event(self):
        with pytest.raises(ValueError):
            decode_event({"type": "Nope"})

    def test_decode_events(self):
        assert decode_event({"type": "GameStateChanged", "state": "LOGGED_IN"}) == GameStateChanged(GameState.LOGGED_IN)
        assert decode_event({"type": "ManualSyncRequested"}) == ManualSyncRequested(source="replay")

    def test_replay_session(self, settings, clock, tmp_path, host_data):
        recording = tmp_path / "session.json"
        recording.write_text(json.dumps({
            "host": host_data,
            "events": [
                {"type": "GameStateChanged", "state": "LOGGED_IN"},
                {"type": "GameTick", "tick": 1},
                {"type": "WidgetLoaded", "group_id": 621},
                {"type": "ScriptPreFired", "script_id": 4100, "arguments": [0, 995, 12]},
                {"type": "GameTick", "tick": 2},
                {"type": "GameTick", "tick": 3},
                {"type": "GameTick", "tick": 4},
            ],
        }))

        host, events = load_recording(recording)
        assert isinstance(host, StaticHost)
        transport = RecordingTransport()
        agent = SyncAgent(
            host,
            settings=settings,
            transport=transport,
            clock=clock,
            wall_clock_timer=False,
            summary_scripts=host.summary_scripts,
        )
        with agent:
            status = replay(agent, host, events, settle_timeout=1.0)

        assert len(transport.sent) == 1
        assert status["last_outcome"]["success"] is True
        assert status["collection_log_items"] == 1
        assert MSG_SYNC_SUCCESS not in host.messages


class TestCommandLine:

    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        yield
        # main() points the root logger at the captured stdout
        logging.getLogger().handlers.clear()

    def test_settings_command(self, capsys):
        assert main(["settings"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["sync_interval_minutes"] == 5
        assert data["api_endpoint"].startswith("https://")

    def test_env_file(self, tmp_path, capsys):
        env_file = tmp_path / "custom.env"
        env_file.write_text("RUNESYNC_SYNC_INTERVAL_MINUTES=15\n")
        assert main(["--env-file", str(env_file), "settings"]) == 0
        assert json.loads(capsys.readouterr().out)["sync_interval_minutes"] == 15

    def test_invalid_settings(self, tmp_path):
        env_file = tmp_path / "bad.env"
        env_file.write_text("RUNESYNC_SYNC_INTERVAL_MINUTES=0\n")
        assert main(["--env-file", str(env_file), "settings"]) == 2

    def test_send_missing_file(self, tmp_path):
        assert main(["send", str(tmp_path / "missing.json")]) == 2

    def test_replay_dry_run(self, tmp_path, capsys, host_data):
        recording = tmp_path / "session.json"
        recording.write_text(json.dumps({
            "host": host_data,
            "events": [{"type": "GameStateChanged", "state": "LOGGED_IN"}],
        }))

        assert main(["replay", str(recording), "--dry-run"]) == 0
        out = capsys.readouterr().out
        assert '"username": "Zezima"' in out
        assert '"success": true' in out

    def test_replay_bad_recording(self, tmp_path):
        recording = tmp_path / "bad.json"
        recording.write_text(json.dumps({"events": [{"type": "Nope"}]}))
        assert main(["replay", str(recording)]) == 2
