import logging
import threading
import time

from .exceptions import CorruptSnapshotError, DuplicateVoterError
from .transactions import (
    GenesisMarker,
    VoteRecord,
    sha256_hex,
    transaction_from_dict,
    transactions_digest,
)

logger = logging.getLogger(__name__)

GENESIS_PREVIOUS_HASH = "0"

# Number of leading zeros required in a sealed block's hash.
# Demo scale: cheap enough for an interactive terminal.
DEFAULT_DIFFICULTY = 3

# A SHA-256 hex digest has 64 characters; more zeros can never be found.
MAX_DIFFICULTY = 64

# Voter uniqueness policies (see Chain.registry_key)
VOTER_SCOPE_ELECTION = "election"
VOTER_SCOPE_GLOBAL = "global"
VOTER_SCOPES = (VOTER_SCOPE_ELECTION, VOTER_SCOPE_GLOBAL)


def now_ms():
    return int(time.time() * 1000)


# --- Part 1: The Block ---

class Block:
    """
    One content-addressed unit of the ledger.

    The hash covers every other field, so any edit to a stored block is
    caught by validate(). Blocks are resealed only while being mined;
    once a block is appended to a Chain it is never touched again.
    """

    def __init__(self, index, timestamp, transactions, previous_hash, nonce=0):
        self.index = index
        self.timestamp = timestamp
        self.transactions = tuple(transactions)
        self.previous_hash = previous_hash
        self.nonce = nonce
        self.hash = self.calculate_hash()

    def __repr__(self):
        return f"<Block {self.index} {self.hash[:12]}>"

    def __eq__(self, other):
        if not isinstance(other, Block):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None

    @property
    def is_genesis(self):
        return self.index == 0

    def calculate_hash(self):
        """
        hash = SHA256(index + timestamp + SHA256(transactions) + previous_hash + nonce)
        with every part rendered as text and concatenated.
        """
        data_to_hash = (
            str(self.index)
            + str(self.timestamp)
            + transactions_digest(self.transactions)
            + self.previous_hash
            + str(self.nonce)
        )
        return sha256_hex(data_to_hash)

    def reseal(self, nonce):
        self.nonce = nonce
        self.hash = self.calculate_hash()

    def validate(self):
        """Checks the stored hash against the block's own fields only."""
        return self.hash == self.calculate_hash()

    def votes(self):
        return [tx for tx in self.transactions if isinstance(tx, VoteRecord)]

    def to_dict(self):
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "previousHash": self.previous_hash,
            "nonce": self.nonce,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data):
        """
        Restores a persisted block exactly as written, stored hash included,
        so that tampering on disk still shows up in validate().
        """
        try:
            block = cls(
                index=int(data["index"]),
                timestamp=int(data["timestamp"]),
                transactions=[transaction_from_dict(tx) for tx in data["transactions"]],
                previous_hash=str(data["previousHash"]),
                nonce=int(data["nonce"]),
            )
            block.hash = str(data["hash"])
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptSnapshotError(f"Malformed block: {e}") from e
        return block


def create_genesis_block(timestamp=None):
    return Block(
        0,
        now_ms() if timestamp is None else timestamp,
        [GenesisMarker()],
        GENESIS_PREVIOUS_HASH,
    )


# --- Part 2: Proof of Work ---

class ProofOfWork:
    """
    Simplified proof-of-work: a block is sealed once its hash starts with
    `difficulty` zero characters. Forces a measurable cost per admitted
    vote; it is not meant to be cryptographically strong.
    """

    def __init__(self, difficulty=DEFAULT_DIFFICULTY):
        if not 0 <= difficulty <= MAX_DIFFICULTY:
            raise ValueError(f"Difficulty must be between 0 and {MAX_DIFFICULTY}.")
        self.difficulty = difficulty
        self.target = "0" * difficulty

    def is_sealed(self, block):
        return block.hash[:self.difficulty] == self.target

    def mine(self, block):
        """Increments the nonce until the block is sealed. Mutates the block."""
        while not self.is_sealed(block):
            block.reseal(block.nonce + 1)
        return block


# --- Part 3: The Chain ---

class Chain:
    """
    The authoritative sequence of sealed blocks plus the voter registry.

    Writers are serialized by a single lock. The blocks live in a tuple
    that is replaced (never modified) after each successful save, so
    readers can scan self.blocks without locking and always see a
    snapshot that is already on disk.
    """

    def __init__(self, store, difficulty=DEFAULT_DIFFICULTY,
                 voter_scope=VOTER_SCOPE_ELECTION, clock=now_ms):
        if voter_scope not in VOTER_SCOPES:
            raise ValueError(f"Unknown voter scope: {voter_scope!r}")
        self.store = store
        self.proof_of_work = ProofOfWork(difficulty)
        self.voter_scope = voter_scope
        self._clock = clock
        self._write_lock = threading.Lock()
        self._blocks = ()
        self._voted = frozenset()

    @property
    def difficulty(self):
        return self.proof_of_work.difficulty

    @property
    def blocks(self):
        return self._blocks

    @property
    def voted_addresses(self):
        return self._voted

    def __len__(self):
        return len(self._blocks)

    def init(self):
        """
        Restores the chain from the store, or starts a new one
        with a fresh genesis block if there is nothing usable on disk.
        """
        with self._write_lock:
            snapshot = self.store.load()
            if snapshot is not None:
                self._blocks = tuple(snapshot.blocks)
                # Rebuild from the blocks too, so a registry written by an
                # older snapshot can never let a recorded voter through.
                self._voted = frozenset(snapshot.voted_addresses) | self._registry_from_blocks(self._blocks)
                logger.info("Restored ledger with %d blocks and %d recorded voters.",
                            len(self._blocks), len(self._voted))
                return self

            genesis = create_genesis_block(self._clock())
            self.store.save((genesis,), frozenset())
            self._blocks = (genesis,)
            self._voted = frozenset()
            logger.info("Created new ledger, genesis hash %s", genesis.hash)
        return self

    def tip(self):
        return self._blocks[-1]

    def registry_key(self, voter_hash, election_id):
        """
        The value recorded in the registry for a vote.
        Per-election scope lets one voter take part in several elections
        held on the same chain; global scope allows one vote ever.
        """
        if self.voter_scope == VOTER_SCOPE_GLOBAL:
            return voter_hash
        return f"{voter_hash}:{election_id}"

    def _registry_from_blocks(self, blocks):
        return frozenset(
            self.registry_key(vote.voter_hash, vote.election_id)
            for block in blocks[1:]
            for vote in block.votes()
        )

    def has_voted(self, voter_hash, election_id):
        return self.registry_key(voter_hash, election_id) in self._voted

    def submit_vote(self, voter_hash, candidate_id, election_id):
        """
        Seals a new block holding one vote and appends it.

        The uniqueness check, mining, saving and publishing happen under
        the write lock as one unit. The snapshot is written before the
        block becomes visible, so a failed save (PersistenceError) leaves
        the chain exactly as it was.
        """
        with self._write_lock:
            key = self.registry_key(voter_hash, election_id)
            if key in self._voted:
                logger.warning("Rejected duplicate vote for election %s (voter %s...).",
                               election_id, voter_hash[:8])
                raise DuplicateVoterError(voter_hash, election_id)

            timestamp = self._clock()
            vote = VoteRecord(
                voter_hash=voter_hash,
                candidate_id=candidate_id,
                election_id=election_id,
                timestamp=timestamp,
            )

            tip = self.tip()
            block = Block(tip.index + 1, timestamp, [vote], tip.hash)
            self.proof_of_work.mine(block)

            blocks = self._blocks + (block,)
            voted = self._voted | {key}
            self.store.save(blocks, voted)

            self._blocks = blocks
            self._voted = voted

        logger.info("Sealed block %d (nonce %d, hash %s...).",
                    block.index, block.nonce, block.hash[:12])
        return block

    def validate_chain(self):
        """
        True if every block's hash matches its contents and every block
        after genesis points at its predecessor's hash.
        """
        blocks = self._blocks
        previous = None
        for block in blocks:
            if not block.validate():
                return False
            if previous is not None and block.previous_hash != previous.hash:
                return False
            previous = block
        return True

    def tally_votes(self, election_id):
        tally = {}
        for block in self._blocks[1:]:
            for vote in block.votes():
                if vote.election_id == election_id:
                    tally[vote.candidate_id] = tally.get(vote.candidate_id, 0) + 1
        return tally

    def find_voter_record(self, voter_hash, election_id):
        """
        Lets a voter confirm their ballot is on the chain.
        The result never says which candidate was chosen.
        """
        for block in self._blocks:
            for vote in block.votes():
                if vote.voter_hash == voter_hash and vote.election_id == election_id:
                    return {
                        "exists": True,
                        "blockIndex": block.index,
                        "blockHash": block.hash,
                        "timestamp": vote.timestamp,
                    }
        return {"exists": False}

    def export_audit(self):
        """The public view of the chain: linkage only, no vote contents."""
        return [
            {
                "index": block.index,
                "timestamp": block.timestamp,
                "previousHash": block.previous_hash,
                "hash": block.hash,
                "nonce": block.nonce,
                "transactionCount": len(block.transactions),
            }
            for block in self._blocks
        ]
