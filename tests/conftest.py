"""
Shared fixtures: a fully populated fake host, a controllable clock and a
transport whose futures the test resolves by hand.
"""

from concurrent.futures import Future

import pytest

from runesync.collection_log import COLLECTION_LOG_GROUP_ID, COLLECTION_LOG_TITLE_CHILD_ID
from runesync.config import Settings
from runesync.host import SKILLS
from runesync.replay import StaticHost
from runesync.sources import COMBAT_ACHIEVEMENT_VARBITS, DIARY_VARBITS, SummaryScripts


class FakeClock:
    """Wall clock the test moves forward explicitly."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class PendingTransport:
    """Transport whose sends stay pending until the test completes them."""

    def __init__(self):
        self.sent = []
        self.futures: list[Future] = []

    def send(self, snapshot):
        future = Future()
        self.sent.append(snapshot)
        self.futures.append(future)
        return future

    @property
    def in_progress(self) -> int:
        return sum(1 for f in self.futures if not f.done())

    def complete(self, result: bool = True, index: int = -1) -> None:
        self.futures[index].set_result(result)


# Summary panel procedures of the client build the fake host imitates
SUMMARY_SCRIPTS = SummaryScripts(quest_progress=2266, diary_progress=2267, combat_task_progress=2268, time_played=2269)


def make_host_data() -> dict:
    scripts = SUMMARY_SCRIPTS
    varbits = {}
    for area, bits in DIARY_VARBITS.items():
        varbits[str(bits[0])] = 1
        varbits[str(bits[1])] = 1
        varbits[str(bits[2])] = 0
        varbits[str(bits[3])] = 0
    for i, bit in enumerate(COMBAT_ACHIEVEMENT_VARBITS.values()):
        varbits[str(bit)] = 10 - i
    return {
        "name": "Zezima",
        "account_type": 0,
        "world": 301,
        "combat_level": 126,
        "stats": {skill: [99, 13_034_431] for skill in SKILLS},
        "quests": {
            "Cook's Assistant": "FINISHED",
            "Dragon Slayer I": "IN_PROGRESS",
            "Recipe for Disaster": "NOT_STARTED",
        },
        "varbits": varbits,
        "scripts": {
            str(scripts.quest_progress): [150, 158],
            str(scripts.diary_progress): [300, 492],
            str(scripts.combat_task_progress): [120, 637],
            str(scripts.time_played): [54_321],
        },
        "summary_scripts": {
            "quest_progress": scripts.quest_progress,
            "diary_progress": scripts.diary_progress,
            "combat_task_progress": scripts.combat_task_progress,
            "time_played": scripts.time_played,
        },
        "widgets": {
            f"{COLLECTION_LOG_GROUP_ID}.{COLLECTION_LOG_TITLE_CHILD_ID}": "Collection Log - Unique: 854/1692",
        },
        "equipment": [1163, 6570, 1704, 4151, 1127, -1, 1079, 7462, 11840, 2550, -1],
    }


@pytest.fixture
def host_data():
    return make_host_data()


@pytest.fixture
def host(host_data):
    return StaticHost(host_data)


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return PendingTransport()
