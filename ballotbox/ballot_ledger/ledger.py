import hashlib
import logging
import threading
from pathlib import Path

from django.conf import settings

from .blockchain import DEFAULT_DIFFICULTY, VOTER_SCOPE_ELECTION, Chain
from .storage import JsonSnapshotStore

logger = logging.getLogger(__name__)

# Above this, one mined block takes long enough to stall other requests
INTERACTIVE_DIFFICULTY = 4


def generate_voter_hash(voter_id, secret_token):
    """
    Anonymizes a voter. The ledger only ever sees this digest,
    which still lets it spot a second ballot from the same person.
    """
    combined_key = f"{voter_id}:{secret_token}"
    return hashlib.sha256(combined_key.encode("utf-8")).hexdigest()


class LedgerService:
    """
    The only entry point the API layer uses to reach the chain.
    Raw voter credentials stop here; everything below works on hashes.
    """

    def __init__(self, chain):
        self.chain = chain

    def submit_vote(self, voter_id, secret_token, candidate_id, election_id):
        """Records a ballot and returns the index of its new block."""
        voter_hash = generate_voter_hash(voter_id, secret_token)
        block = self.chain.submit_vote(voter_hash, candidate_id, election_id)
        return block.index

    def audit_chain(self):
        return {
            "chain": self.chain.export_audit(),
            "isValid": self.chain.validate_chain(),
        }

    def tally(self, election_id):
        return self.chain.tally_votes(election_id)

    def verify(self, voter_id, secret_token, election_id):
        voter_hash = generate_voter_hash(voter_id, secret_token)
        return self.chain.find_voter_record(voter_hash, election_id)

    def has_voted(self, voter_id, secret_token, election_id):
        voter_hash = generate_voter_hash(voter_id, secret_token)
        return self.chain.has_voted(voter_hash, election_id)


# ---
# Process-wide instance
# ---
_ledger = None
_ledger_lock = threading.Lock()


def build_ledger():
    """Creates a LedgerService from the LEDGER_* Django settings."""
    data_dir = Path(getattr(settings, "LEDGER_DATA_DIR", "data"))
    filename = getattr(settings, "LEDGER_SNAPSHOT_FILE", "blockchain.json")
    store = JsonSnapshotStore(data_dir / filename)

    chain = Chain(
        store,
        difficulty=getattr(settings, "LEDGER_DIFFICULTY", DEFAULT_DIFFICULTY),
        voter_scope=getattr(settings, "LEDGER_VOTER_SCOPE", VOTER_SCOPE_ELECTION),
    )
    if chain.difficulty > INTERACTIVE_DIFFICULTY:
        logger.warning(
            "LEDGER_DIFFICULTY=%d: votes are mined on the request thread, and under "
            "ASGI sync views share one worker thread, so reads will queue behind each vote.",
            chain.difficulty,
        )
    chain.init()
    logger.info("Ledger ready at %s (difficulty %d, %s voter scope).",
                store.path, chain.difficulty, chain.voter_scope)
    return LedgerService(chain)


def get_ledger():
    global _ledger
    if _ledger is None:
        with _ledger_lock:
            if _ledger is None:
                _ledger = build_ledger()
    return _ledger


def reset_ledger():
    """Drops the cached instance; the next get_ledger() reloads from disk."""
    global _ledger
    with _ledger_lock:
        _ledger = None
