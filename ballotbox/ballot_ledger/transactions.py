import hashlib
import json
from dataclasses import dataclass

from .exceptions import CorruptSnapshotError

GENESIS_DATA = "Ballot Box Genesis"


# --- The two kinds of transaction a block can hold ---

@dataclass(frozen=True)
class GenesisMarker:
    """
    The placeholder record carried by block 0.
    It is not a vote and is skipped by every tally and lookup.
    """
    data: str = GENESIS_DATA

    def to_dict(self):
        # Key order is part of the hash, do not reorder.
        return {"type": "genesis", "data": self.data}


@dataclass(frozen=True)
class VoteRecord:
    """
    A single anonymous ballot.
    voter_hash is SHA-256(voter_id + ":" + secret_token), never the raw ID.
    """
    voter_hash: str
    candidate_id: str
    election_id: str
    timestamp: int

    def to_dict(self):
        # Key order is part of the hash, do not reorder.
        return {
            "voterHash": self.voter_hash,
            "candidateId": self.candidate_id,
            "electionId": self.election_id,
            "timestamp": self.timestamp,
        }


def transaction_from_dict(data):
    """Rebuilds a GenesisMarker or VoteRecord from its persisted form."""
    if not isinstance(data, dict):
        raise CorruptSnapshotError(f"Transaction is not an object: {data!r}")

    if data.get("type") == "genesis":
        return GenesisMarker(data=data.get("data", GENESIS_DATA))

    try:
        return VoteRecord(
            voter_hash=str(data["voterHash"]),
            candidate_id=str(data["candidateId"]),
            election_id=str(data["electionId"]),
            timestamp=int(data["timestamp"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CorruptSnapshotError(f"Malformed vote transaction: {e}") from e


# --- Canonical encoding ---
# Shared by the block digest and the snapshot file so that a chain
# re-derived from disk hashes to exactly the same values.

def canonical_json(value):
    """Compact JSON with no whitespace, keeping dict insertion order."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def serialize_transactions(transactions):
    return canonical_json([tx.to_dict() for tx in transactions])


def sha256_hex(text):
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def transactions_digest(transactions):
    return sha256_hex(serialize_transactions(transactions))
