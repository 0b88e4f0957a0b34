import json
import logging
import os
import tempfile
import time
from collections import namedtuple
from pathlib import Path

from .blockchain import GENESIS_PREVIOUS_HASH, Block
from .exceptions import CorruptSnapshotError, PersistenceError
from .transactions import GenesisMarker

logger = logging.getLogger(__name__)

Snapshot = namedtuple("Snapshot", ["blocks", "voted_addresses"])


class JsonSnapshotStore:
    """
    Keeps the whole chain in a single JSON file:

        {"chain": [Block, ...], "votedAddresses": ["...", ...]}

    Every save rewrites the file through a temporary file and an atomic
    rename, so a crash mid-write leaves the previous snapshot intact.
    """

    def __init__(self, path):
        self.path = Path(path)

    def load(self):
        """
        Returns the stored Snapshot, or None if there is no usable file.

        A damaged file is moved aside (blockchain.json.corrupt-<ms>) and
        treated as missing, so the fresh genesis snapshot written next can
        never overwrite the only copy of the confirmed votes.
        """
        if not self.path.exists():
            return None
        try:
            return self.read()
        except CorruptSnapshotError as e:
            aside = self.quarantine()
            logger.warning("Ignoring corrupt ledger snapshot %s (moved to %s): %s",
                           self.path, aside, e)
            return None

    def quarantine(self):
        """Renames the current snapshot out of the way and returns its new path."""
        aside = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time() * 1000)}")
        try:
            os.rename(self.path, aside)
        except OSError as e:
            # Starting over here would destroy the ledger on the next save
            logger.error("Could not move corrupt snapshot %s aside: %s", self.path, e)
            raise PersistenceError(f"Could not preserve corrupt snapshot: {e}") from e
        return aside

    def read(self):
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptSnapshotError(f"Unreadable snapshot: {e}") from e
        return decode_snapshot(data)

    def save(self, blocks, voted_addresses):
        payload = encode_snapshot(blocks, voted_addresses)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error("Failed to write ledger snapshot %s: %s", self.path, e)
            raise PersistenceError(f"Could not save ledger snapshot: {e}") from e


def encode_snapshot(blocks, voted_addresses):
    return {
        "chain": [block.to_dict() for block in blocks],
        "votedAddresses": sorted(voted_addresses),
    }


def decode_snapshot(data):
    """
    Turns the parsed JSON back into blocks and checks the shape of the
    chain (genesis first, contiguous indexes). Hashes are NOT checked here;
    that is the job of Chain.validate_chain().
    """
    if not isinstance(data, dict):
        raise CorruptSnapshotError("Snapshot root is not an object.")

    raw_chain = data.get("chain")
    if not isinstance(raw_chain, list) or not raw_chain:
        raise CorruptSnapshotError("Snapshot has no blocks.")

    raw_voted = data.get("votedAddresses", [])
    if not isinstance(raw_voted, list):
        raise CorruptSnapshotError("votedAddresses is not a list.")

    blocks = []
    for position, raw_block in enumerate(raw_chain):
        if not isinstance(raw_block, dict):
            raise CorruptSnapshotError(f"Block {position} is not an object.")
        block = Block.from_dict(raw_block)
        if block.index != position:
            raise CorruptSnapshotError(
                f"Block at position {position} has index {block.index}."
            )
        blocks.append(block)

    genesis = blocks[0]
    if (genesis.previous_hash != GENESIS_PREVIOUS_HASH
            or len(genesis.transactions) != 1
            or not isinstance(genesis.transactions[0], GenesisMarker)):
        raise CorruptSnapshotError("First block is not a genesis block.")

    return Snapshot(blocks=blocks, voted_addresses=frozenset(str(v) for v in raw_voted))
