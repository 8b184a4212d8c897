class UnionVoteError(Exception):
    """Base class for domain-specific errors."""

    pass


# --- Orchestrator errors ---


class NotConnectedError(UnionVoteError):
    """Raised when an operation needs a connected wallet and none is present."""

    pass


class NotInitializedError(UnionVoteError):
    """Raised when the encryption subsystem has not been initialized."""

    pass


class EncryptionFailedError(UnionVoteError):
    """Raised when the vote value could not be encrypted. Nothing was submitted."""

    pass


class SubmissionRejectedError(UnionVoteError):
    """Raised when the signer refused to sign the creation transaction."""

    pass


class SubmissionFailedError(UnionVoteError):
    """Raised when the creation transaction failed for any other reason."""

    pass


class DecryptionFailedError(UnionVoteError):
    """Raised when the reveal protocol failed. The vote can be revealed again."""

    pass


class ReadFailedError(UnionVoteError):
    """Raised when ledger state could not be read."""

    pass


class VoteNotFoundError(UnionVoteError):
    """Raised when a vote is not present in the record store."""

    pass


class RevealInProgressError(UnionVoteError):
    """Raised when a reveal is already running for the same vote."""

    pass


# --- Gateway errors ---


class LedgerError(UnionVoteError):
    """Base class for failures reported by the ledger gateway."""

    pass


class LedgerRevertError(LedgerError):
    """Raised when the contract reverts a call or transaction."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ProposalNotFoundError(LedgerRevertError):
    """Raised when the ledger has no proposal with the requested id."""

    pass


class AlreadyVerifiedError(LedgerRevertError):
    """Raised when a decryption proof is submitted for an already verified vote."""

    pass


class TransactionRejectedError(LedgerError):
    """Raised when the wallet or signer refused to sign a transaction."""

    pass


class CoprocessorError(UnionVoteError):
    """Raised when the FHE co-processor cannot complete a request."""

    pass
