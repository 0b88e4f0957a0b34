class LedgerError(Exception):
    """Base class for every error raised by the ballot ledger."""


class DuplicateVoterError(LedgerError):
    """
    The voter hash is already recorded for this election.
    The submission is rejected; the chain is left untouched.
    """

    def __init__(self, voter_hash, election_id=None):
        self.voter_hash = voter_hash
        self.election_id = election_id
        super().__init__(
            "Double voting attempt detected. This address has already voted."
        )


class PersistenceError(LedgerError):
    """The chain snapshot could not be written to durable storage."""


class CorruptSnapshotError(LedgerError):
    """The persisted snapshot exists but cannot be decoded into a chain."""
