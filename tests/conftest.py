import itertools

import pytest

from ballot_ledger.blockchain import Chain
from ballot_ledger.ledger import reset_ledger
from ballot_ledger.storage import JsonSnapshotStore

TEST_DIFFICULTY = 2
TERMINAL_KEY = "test-terminal-key"


class FakeClock:
    """Millisecond clock that ticks once per call."""

    def __init__(self, start=1_700_000_000_000):
        self._ticks = itertools.count(start)

    def __call__(self):
        return next(self._ticks)


@pytest.fixture
def store(tmp_path):
    return JsonSnapshotStore(tmp_path / "blockchain.json")


@pytest.fixture
def chain(store):
    return Chain(store, difficulty=TEST_DIFFICULTY, clock=FakeClock()).init()


@pytest.fixture
def ledger_settings(settings, tmp_path):
    """Points the process-wide ledger at a throwaway snapshot file."""
    settings.LEDGER_DATA_DIR = tmp_path
    settings.LEDGER_SNAPSHOT_FILE = "blockchain.json"
    settings.LEDGER_DIFFICULTY = TEST_DIFFICULTY
    settings.LEDGER_VOTER_SCOPE = "election"
    settings.VOTING_TERMINAL_API_KEY = TERMINAL_KEY
    reset_ledger()
    yield settings
    reset_ledger()
