import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import anyio
import structlog
from redis import asyncio as aioredis
from redis.exceptions import LockError

from ..gateways.fhe_gateway import DecryptionGateway, EncryptionGateway
from ..gateways.ledger_gateway import LedgerGateway
from ..models.exceptions import (
    AlreadyVerifiedError,
    DecryptionFailedError,
    EncryptionFailedError,
    NotConnectedError,
    NotInitializedError,
    ReadFailedError,
    RevealInProgressError,
    SubmissionFailedError,
    SubmissionRejectedError,
    TransactionRejectedError,
    VoteNotFoundError,
)
from ..models.vote_models import (
    TransactionReceipt,
    VoteCreate,
    VoteRecord,
    WalletSession,
)
from .status_channel import TransactionStatusChannel
from .vote_store import VoteRecordStore

logger = structlog.stdlib.get_logger()


def generate_vote_id() -> str:
    """Time-based proposal id, unique per creator at millisecond resolution."""
    return f"vote-{time.time_ns() // 1_000_000}"


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def is_already_verified(exc: BaseException) -> bool:
    """True if the ledger refused a proof because the vote was already revealed."""
    return any(
        isinstance(e, AlreadyVerifiedError) or "already verified" in str(e).lower()
        for e in _exception_chain(exc)
    )


def is_user_rejection(exc: BaseException) -> bool:
    return any(
        isinstance(e, TransactionRejectedError) or "user rejected" in str(e).lower()
        for e in _exception_chain(exc)
    )


class RevealLockManager:
    """
    Process-wide container for per-vote reveal locks.
    Shared by every orchestrator so two sessions never reveal the same vote at once.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def get_lock(self, vote_id: str) -> asyncio.Lock:
        """Get or create an asyncio.Lock for a specific vote."""
        if vote_id not in self._locks:
            self._locks[vote_id] = asyncio.Lock()
        return self._locks[vote_id]

    def is_locked(self, vote_id: str) -> bool:
        lock = self._locks.get(vote_id)
        return lock is not None and lock.locked()

    def discard(self, vote_id: str) -> None:
        """Forget the lock of a vote that can never be revealed again."""
        lock = self._locks.get(vote_id)
        if lock is not None and not lock.locked():
            del self._locks[vote_id]

    def __contains__(self, vote_id: object) -> bool:
        return vote_id in self._locks

    def clear(self):
        """Helper for testing to reset state."""
        self._locks.clear()


class VoteLifecycleOrchestrator:
    """
    Drives vote creation (encrypt, submit, await finality) and revelation
    (re-read, decrypt, submit proof) for one wallet session.
    """

    wallet: WalletSession
    ledger: LedgerGateway
    encryption: EncryptionGateway
    decryption: DecryptionGateway
    store: VoteRecordStore
    status: TransactionStatusChannel
    locks: RevealLockManager
    redis: aioredis.Redis | None

    def __init__(
        self,
        wallet: WalletSession,
        ledger: LedgerGateway,
        encryption: EncryptionGateway,
        decryption: DecryptionGateway,
        store: VoteRecordStore,
        status: TransactionStatusChannel,
        locks: RevealLockManager,
        redis_client: aioredis.Redis | None = None,
        reveal_timeout: float = 120.0,
        id_factory: Callable[[], str] = generate_vote_id,
    ):
        self.wallet = wallet
        self.ledger = ledger
        self.encryption = encryption
        self.decryption = decryption
        self.store = store
        self.status = status
        self.locks = locks
        self.redis = redis_client
        self.reveal_timeout = reveal_timeout
        self.id_factory = id_factory

    def _require_wallet(self, message: str) -> str:
        if not self.wallet.is_connected or self.wallet.address is None:
            self.status.error(message)
            raise NotConnectedError("Wallet is not connected")
        return self.wallet.address

    async def initialize_encryption(self) -> None:
        """Initialize the encryption subsystem once a wallet is connected."""
        self._require_wallet("Please connect wallet first")
        if self.encryption.is_initialized:
            return
        try:
            await self.encryption.initialize()
        except Exception as e:
            logger.error("encryption.init_failed", exc_info=True)
            self.status.error("FHE initialization failed")
            raise NotInitializedError("FHE initialization failed") from e

    async def refresh(self) -> list[VoteRecord]:
        """Re-read every proposal from the ledger into the store."""
        try:
            return await self.store.refresh()
        except ReadFailedError:
            self.status.error("Failed to load data")
            raise

    async def _refresh_after_write(self) -> None:
        # The write is already final; a failed read only delays the view.
        try:
            await self.store.refresh()
        except ReadFailedError:
            logger.warning("store.post_write_refresh_failed")

    async def check_availability(self) -> bool:
        try:
            available = await self.ledger.is_service_available()
        except Exception:
            logger.warning("ledger.availability_check_failed", exc_info=True)
            self.status.error("Check failed")
            return False

        if available:
            self.status.success("Contract available!")
        else:
            self.status.error("Contract unavailable")
        return available

    # --- Creation ---

    async def create_vote(self, vote_create: VoteCreate) -> VoteRecord | None:
        """
        Encrypt the vote value and submit a new proposal carrying it.
        Returns the record as read back after finality, or None if the
        post-write refresh could not read it yet.
        """
        caller = self._require_wallet("Please connect wallet first")
        if not self.encryption.is_initialized:
            self.status.error("FHE is not initialized")
            raise NotInitializedError("Encryption subsystem is not initialized")

        vote_id = self.id_factory()
        log = logger.bind(vote_id=vote_id, creator=caller)
        self.status.pending("Creating vote with FHE...")

        try:
            encrypted = await self.encryption.encrypt(
                self.ledger.contract_address, caller, vote_create.vote_value
            )
        except Exception as e:
            log.error("vote.encryption_failed", exc_info=True)
            self.status.error("Encryption failed")
            raise EncryptionFailedError("Encryption failed") from e

        try:
            tx = await self.ledger.create_proposal(
                vote_id,
                vote_create.title,
                encrypted.ciphertext,
                encrypted.proof,
                0,
                0,
                vote_create.description,
                sender=caller,
            )
            self.status.pending("Processing transaction...")
            receipt = await tx.wait()
        except Exception as e:
            if is_user_rejection(e):
                log.info("vote.submission_rejected")
                self.status.error("Transaction rejected")
                raise SubmissionRejectedError("Transaction rejected") from e
            log.error("vote.submission_failed", exc_info=True)
            self.status.error("Submission failed")
            raise SubmissionFailedError("Submission failed") from e

        log.info("vote.created", tx_hash=receipt.tx_hash, block=receipt.block_number)
        self.status.success("Vote created!")
        await self._refresh_after_write()
        return self.store.get(vote_id)

    # --- Revelation ---

    @asynccontextmanager
    async def _reveal_guard(self, vote_id: str) -> AsyncIterator[None]:
        """Acquire-or-reject the per-vote reveal lock; always released on exit."""
        lock = self.locks.get_lock(vote_id)
        if lock.locked():
            raise RevealInProgressError(f"Reveal already running for vote {vote_id}")

        async with lock:
            if not self.redis:
                yield
                return

            # Other processes sharing this Redis are excluded too. The lock
            # expires on its own if this process dies mid-reveal.
            redis_lock = self.redis.lock(
                f"lock:vote:{vote_id}:reveal", timeout=self.reveal_timeout
            )
            if not await redis_lock.acquire(blocking=False):
                raise RevealInProgressError(
                    f"Reveal already running for vote {vote_id}"
                )
            try:
                yield
            finally:
                try:
                    await redis_lock.release()
                except LockError:
                    logger.warning("vote.reveal_lock_expired", vote_id=vote_id)

    async def reveal(self, vote_id: str) -> int:
        """
        Reveal the aggregate value of a vote, submitting the decryption proof
        if nobody has yet. Returns the revealed integer.
        """
        caller = self._require_wallet("Connect wallet first")
        if self.store.get(vote_id) is None:
            raise VoteNotFoundError(f"Vote {vote_id} not found")

        async with self._reveal_guard(vote_id):
            value = await self._do_reveal(vote_id, caller)
        # Verified is terminal, later reveals take the read-only fast path.
        self.locks.discard(vote_id)
        return value

    async def _do_reveal(self, vote_id: str, caller: str) -> int:
        log = logger.bind(vote_id=vote_id, caller=caller)

        async def submit_proof(
            clear_values_encoded: bytes, decryption_proof: bytes
        ) -> TransactionReceipt:
            tx = await self.ledger.submit_decryption_proof(
                vote_id, clear_values_encoded, decryption_proof, sender=caller
            )
            return await tx.wait()

        try:
            with anyio.fail_after(self.reveal_timeout):
                # Read-verify-then-act: check the ledger, not the cached record.
                proposal = await self.ledger.get_proposal(vote_id)
                if proposal.is_verified:
                    log.info("vote.reveal_cached", value=proposal.revealed_value)
                    return proposal.revealed_value

                self.status.pending("Decrypting...")
                handle = await self.ledger.get_encrypted_handle(vote_id)
                result = await self.decryption.verify(
                    [handle], self.ledger.contract_address, submit_proof
                )
                self.status.pending("Verifying...")
                clear_value = int(result.clear_values[handle])
        except Exception as e:
            if is_already_verified(e):
                log.info("vote.reveal_race_lost")
                self.status.success("Already verified")
                return await self._revealed_value_after_race(vote_id)

            log.error("vote.reveal_failed", exc_info=True)
            self.status.error("Decryption failed")
            raise DecryptionFailedError(f"Decryption failed for vote {vote_id}") from e

        await self._refresh_after_write()
        log.info("vote.revealed", value=clear_value)
        self.status.success("Verified!")
        return clear_value

    async def _revealed_value_after_race(self, vote_id: str) -> int:
        await self._refresh_after_write()
        record = self.store.get(vote_id)
        if record is not None and record.is_verified:
            return record.revealed_value
        try:
            proposal = await self.ledger.get_proposal(vote_id)
        except Exception as e:
            raise DecryptionFailedError(
                f"Vote {vote_id} was revealed elsewhere but could not be read"
            ) from e
        return proposal.revealed_value
