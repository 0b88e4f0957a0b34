import hashlib
import threading

import pytest

from ballot_ledger.blockchain import (
    GENESIS_PREVIOUS_HASH,
    Block,
    Chain,
    ProofOfWork,
    create_genesis_block,
)
from ballot_ledger.exceptions import DuplicateVoterError, PersistenceError
from ballot_ledger.transactions import GenesisMarker, VoteRecord, serialize_transactions
from conftest import TEST_DIFFICULTY, FakeClock

H1 = "a" * 64
H2 = "b" * 64
H3 = "c" * 64


def _sha(text):
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


# --- Block ---

def test_genesis_block_shape():
    genesis = create_genesis_block(timestamp=1000)

    assert genesis.index == 0
    assert genesis.is_genesis
    assert genesis.previous_hash == GENESIS_PREVIOUS_HASH
    assert genesis.transactions == (GenesisMarker(),)
    assert genesis.nonce == 0
    assert genesis.validate()


def test_transactions_use_fixed_canonical_encoding():
    vote = VoteRecord(voter_hash="h", candidate_id="C1", election_id="E1", timestamp=5)

    assert serialize_transactions([vote]) == (
        '[{"voterHash":"h","candidateId":"C1","electionId":"E1","timestamp":5}]'
    )
    assert serialize_transactions([GenesisMarker()]) == (
        '[{"type":"genesis","data":"Ballot Box Genesis"}]'
    )


def test_block_hash_follows_digest_rule():
    vote = VoteRecord(voter_hash="h", candidate_id="C1", election_id="E1", timestamp=1700000000000)
    block = Block(1, 1700000000000, [vote], "abc")

    tx_digest = _sha('[{"voterHash":"h","candidateId":"C1","electionId":"E1","timestamp":1700000000000}]')
    expected = _sha("1" + "1700000000000" + tx_digest + "abc" + "0")

    assert block.nonce == 0
    assert block.hash == expected


def test_block_construction_is_deterministic():
    vote = VoteRecord(H1, "C1", "E1", 10)
    assert Block(3, 10, [vote], "prev").hash == Block(3, 10, [vote], "prev").hash
    assert Block(3, 10, [vote], "prev").hash != Block(3, 11, [vote], "prev").hash


def test_reseal_updates_hash_and_stays_valid():
    block = Block(1, 10, [VoteRecord(H1, "C1", "E1", 10)], "prev")
    original = block.hash

    block.reseal(42)

    assert block.nonce == 42
    assert block.hash != original
    assert block.validate()


def test_tampered_block_fails_validation():
    block = Block(1, 10, [VoteRecord(H1, "C1", "E1", 10)], "prev")

    block.transactions = (VoteRecord(H1, "C2", "E1", 10),)

    assert not block.validate()


# --- Proof of Work ---

@pytest.mark.parametrize("difficulty", [1, 2, 3])
def test_mined_block_has_leading_zeros(difficulty):
    block = Block(1, 10, [VoteRecord(H1, "C1", "E1", 10)], "prev")

    ProofOfWork(difficulty).mine(block)

    assert block.hash.startswith("0" * difficulty)
    assert block.validate()


def test_zero_difficulty_accepts_first_hash():
    block = Block(1, 10, [VoteRecord(H1, "C1", "E1", 10)], "prev")
    ProofOfWork(0).mine(block)
    assert block.nonce == 0


@pytest.mark.parametrize("difficulty", [-1, 65, 100])
def test_unreachable_difficulty_is_rejected(difficulty):
    with pytest.raises(ValueError):
        ProofOfWork(difficulty)


def test_full_length_difficulty_is_accepted():
    assert ProofOfWork(64).target == "0" * 64


# --- Chain ---

def test_new_chain_starts_with_genesis_only(chain):
    assert len(chain) == 1
    assert chain.tip().is_genesis
    assert chain.validate_chain()
    assert chain.tally_votes("E1") == {}


def test_submit_vote_seals_and_links_block(chain):
    genesis = chain.tip()

    block = chain.submit_vote(H1, "C1", "E1")

    assert block.index == 1
    assert block.previous_hash == genesis.hash
    assert block.hash.startswith("0" * TEST_DIFFICULTY)
    assert chain.tip() is block
    assert block.votes() == [VoteRecord(H1, "C1", "E1", block.timestamp)]


def test_chain_stays_valid_after_every_vote(chain):
    for n in range(6):
        chain.submit_vote(f"{n:064x}", f"C{n % 2}", "E1")
        assert chain.validate_chain()

    assert [b.index for b in chain.blocks] == list(range(7))
    assert all(b.hash.startswith("0" * TEST_DIFFICULTY) for b in chain.blocks[1:])


def test_tally_and_duplicate_example(chain):
    chain.submit_vote(H1, "C1", "E1")
    assert chain.tally_votes("E1") == {"C1": 1}

    with pytest.raises(DuplicateVoterError):
        chain.submit_vote(H1, "C2", "E1")

    assert len(chain) == 2
    assert chain.tally_votes("E1") == {"C1": 1}


def test_tally_counts_only_matching_election(chain):
    chain.submit_vote(H1, "C1", "E1")
    chain.submit_vote(H2, "C1", "E1")
    chain.submit_vote(H3, "C2", "E1")
    chain.submit_vote(H1, "C9", "E2")

    assert chain.tally_votes("E1") == {"C1": 2, "C2": 1}
    assert chain.tally_votes("E2") == {"C9": 1}
    assert chain.tally_votes("nope") == {}


def test_per_election_scope_allows_other_elections(chain):
    chain.submit_vote(H1, "C1", "E1")
    chain.submit_vote(H1, "C1", "E2")

    assert chain.has_voted(H1, "E1")
    assert chain.has_voted(H1, "E2")
    assert not chain.has_voted(H1, "E3")


def test_global_scope_allows_one_vote_ever(store):
    chain = Chain(store, difficulty=1, voter_scope="global", clock=FakeClock()).init()
    chain.submit_vote(H1, "C1", "E1")

    with pytest.raises(DuplicateVoterError):
        chain.submit_vote(H1, "C1", "E2")
    assert chain.voted_addresses == {H1}


def test_unknown_voter_scope_is_rejected(store):
    with pytest.raises(ValueError):
        Chain(store, voter_scope="sometimes")


def test_altered_block_hash_invalidates_chain(chain):
    chain.submit_vote(H1, "C1", "E1")
    chain.submit_vote(H2, "C2", "E1")
    assert len(chain) == 3

    chain.blocks[2].hash = "0" * 64

    assert not chain.validate_chain()


def test_broken_link_invalidates_chain(chain):
    chain.submit_vote(H1, "C1", "E1")
    chain.submit_vote(H2, "C2", "E1")

    # Valid on its own, but no longer points at block 1
    block = chain.blocks[2]
    block.previous_hash = "f" * 64
    block.reseal(block.nonce)

    assert block.validate()
    assert not chain.validate_chain()


def test_find_voter_record_hides_candidate(chain):
    chain.submit_vote(H1, "C1", "E1")
    block = chain.tip()

    record = chain.find_voter_record(H1, "E1")

    assert record == {
        "exists": True,
        "blockIndex": 1,
        "blockHash": block.hash,
        "timestamp": block.votes()[0].timestamp,
    }
    assert "candidateId" not in record
    assert chain.find_voter_record(H1, "E2") == {"exists": False}
    assert chain.find_voter_record(H2, "E1") == {"exists": False}


def test_export_audit_has_no_vote_contents(chain):
    chain.submit_vote(H1, "C1", "E1")

    audit = chain.export_audit()

    assert [entry["index"] for entry in audit] == [0, 1]
    assert set(audit[1]) == {"index", "timestamp", "previousHash", "hash", "nonce", "transactionCount"}
    assert audit[1]["previousHash"] == audit[0]["hash"]
    assert audit[1]["transactionCount"] == 1
    assert H1 not in str(audit)


def test_concurrent_duplicate_submissions_admit_one(chain):
    barrier = threading.Barrier(4)
    outcomes = []

    def vote():
        barrier.wait()
        try:
            chain.submit_vote(H1, "C1", "E1")
            outcomes.append("ok")
        except DuplicateVoterError:
            outcomes.append("duplicate")

    threads = [threading.Thread(target=vote) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["duplicate"] * 3 + ["ok"]
    assert len(chain) == 2
    assert chain.validate_chain()


class StallingStore:
    """Saves the genesis block, then holds every later save until released."""

    def __init__(self):
        self.saves = 0
        self.entered = threading.Event()
        self.release = threading.Event()

    def load(self):
        return None

    def save(self, blocks, voted_addresses):
        self.saves += 1
        if self.saves > 1:
            self.entered.set()
            self.release.wait(timeout=10)


def test_reads_do_not_wait_for_an_inflight_vote():
    store = StallingStore()
    chain = Chain(store, difficulty=1, clock=FakeClock()).init()
    genesis = chain.tip()

    writer = threading.Thread(target=chain.submit_vote, args=(H1, "C1", "E1"))
    writer.start()
    assert store.entered.wait(timeout=5)

    reads = {}

    def read_everything():
        reads["valid"] = chain.validate_chain()
        reads["tally"] = chain.tally_votes("E1")
        reads["audit"] = chain.export_audit()
        reads["record"] = chain.find_voter_record(H1, "E1")

    reader = threading.Thread(target=read_everything)
    reader.start()
    reader.join(timeout=2)
    finished_while_writing = not reader.is_alive()

    store.release.set()
    writer.join(timeout=5)
    reader.join(timeout=5)

    assert finished_while_writing
    assert reads == {
        "valid": True,
        "tally": {},
        "audit": [entry for entry in chain.export_audit() if entry["index"] == 0],
        "record": {"exists": False},
    }
    assert [b.index for b in chain.blocks] == [0, 1]
    assert chain.blocks[1].previous_hash == genesis.hash
    assert chain.tally_votes("E1") == {"C1": 1}


class FailingStore:
    """Accepts the genesis write, then fails every save."""

    def __init__(self):
        self.saves = 0

    def load(self):
        return None

    def save(self, blocks, voted_addresses):
        self.saves += 1
        if self.saves > 1:
            raise PersistenceError("disk full")


def test_failed_save_leaves_chain_untouched():
    chain = Chain(FailingStore(), difficulty=1, clock=FakeClock()).init()

    with pytest.raises(PersistenceError):
        chain.submit_vote(H1, "C1", "E1")

    assert len(chain) == 1
    assert not chain.has_voted(H1, "E1")
    assert chain.tally_votes("E1") == {}
