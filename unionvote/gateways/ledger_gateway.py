import asyncio
import hashlib
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol

from eth_abi import decode
from typing_extensions import override

from ..models.exceptions import (
    AlreadyVerifiedError,
    LedgerRevertError,
    ProposalNotFoundError,
)
from ..models.vote_models import ProposalData, TransactionReceipt

ALREADY_VERIFIED_REASON = "Data already verified"


class Transaction(ABC):
    """A submitted ledger write. Durable only once wait() returns."""

    tx_hash: str

    @abstractmethod
    async def wait(self) -> TransactionReceipt:
        """Block until the transaction is final and return its receipt."""
        pass


class LedgerGateway(ABC):
    """
    Read and write access to the voting contract.
    """

    contract_address: str

    @abstractmethod
    async def list_proposal_ids(self) -> list[str]:
        """Enumerate every proposal id known to the contract."""
        pass

    @abstractmethod
    async def get_proposal(self, proposal_id: str) -> ProposalData:
        """Fetch the public fields of a proposal."""
        pass

    @abstractmethod
    async def get_encrypted_handle(self, proposal_id: str) -> str:
        """Fetch the ciphertext handle of the encrypted vote value."""
        pass

    @abstractmethod
    async def is_service_available(self) -> bool:
        pass

    @abstractmethod
    async def create_proposal(
        self,
        proposal_id: str,
        title: str,
        ciphertext: bytes,
        proof: bytes,
        public_value1: int,
        public_value2: int,
        description: str,
        *,
        sender: str,
    ) -> Transaction:
        """Submit a proposal carrying the encrypted vote value."""
        pass

    @abstractmethod
    async def submit_decryption_proof(
        self,
        proposal_id: str,
        clear_values_encoded: bytes,
        proof: bytes,
        *,
        sender: str,
    ) -> Transaction:
        """Submit revealed clear values with the co-processor's decryption proof."""
        pass


class ProofVerifier(Protocol):
    """What the in-memory ledger needs from a co-processor to check proofs."""

    def verify_input_proof(
        self, handle: str, contract_address: str, caller_address: str, proof: bytes
    ) -> bool: ...

    def check_signatures(
        self, handles: list[str], clear_values_encoded: bytes, proof: bytes
    ) -> bool: ...


class _ProposalState:
    def __init__(
        self,
        title: str,
        description: str,
        handle: str,
        public_value1: int,
        public_value2: int,
        creator: str,
        timestamp: int,
    ):
        self.title = title
        self.description = description
        self.handle = handle
        self.public_value1 = public_value1
        self.public_value2 = public_value2
        self.creator = creator
        self.timestamp = timestamp
        self.is_verified = False
        self.decrypted_value = 0


class InMemoryTransaction(Transaction):
    """
    A pending write against the in-memory ledger. The state change is applied
    when the transaction is waited on, so nothing is visible before finality.
    """

    def __init__(
        self,
        ledger: "InMemoryLedgerGateway",
        tx_hash: str,
        apply: Callable[[], None],
    ):
        self.ledger = ledger
        self.tx_hash = tx_hash
        self._apply = apply
        self._receipt: TransactionReceipt | None = None

    @override
    async def wait(self) -> TransactionReceipt:
        if self._receipt is not None:
            return self._receipt
        # Yield once so concurrent submitters interleave like real block inclusion.
        await asyncio.sleep(0)
        async with self.ledger._lock:
            self._apply()
            self.ledger.block_number += 1
            self._receipt = TransactionReceipt(
                tx_hash=self.tx_hash, block_number=self.ledger.block_number
            )
        return self._receipt


class InMemoryLedgerGateway(LedgerGateway):
    """
    Development ledger that keeps contract state in process memory.
    Mirrors the contract's revert rules and checks proofs with the co-processor.
    """

    proposals: dict[str, _ProposalState]
    block_number: int
    _lock: asyncio.Lock
    _nonce: int

    def __init__(
        self,
        verifier: ProofVerifier | None = None,
        contract_address: str = "0x" + "5e" * 20,
        clock: Callable[[], float] = time.time,
    ):
        self.contract_address = contract_address
        self.verifier = verifier
        self.clock = clock
        self.proposals = {}
        self.block_number = 0
        self._lock = asyncio.Lock()
        self._nonce = 0

    def _next_tx_hash(self, *parts: str) -> str:
        self._nonce += 1
        digest = hashlib.sha256("|".join((str(self._nonce),) + parts).encode())
        return "0x" + digest.hexdigest()

    def _require(self, proposal_id: str) -> _ProposalState:
        state = self.proposals.get(proposal_id)
        if state is None:
            raise ProposalNotFoundError("Business data does not exist")
        return state

    @override
    async def list_proposal_ids(self) -> list[str]:
        async with self._lock:
            return list(self.proposals.keys())

    @override
    async def get_proposal(self, proposal_id: str) -> ProposalData:
        async with self._lock:
            state = self._require(proposal_id)
            return ProposalData(
                title=state.title,
                description=state.description,
                public_vote_count=state.public_value2,
                timestamp=state.timestamp,
                creator=state.creator,
                is_verified=state.is_verified,
                revealed_value=state.decrypted_value,
            )

    @override
    async def get_encrypted_handle(self, proposal_id: str) -> str:
        async with self._lock:
            return self._require(proposal_id).handle

    @override
    async def is_service_available(self) -> bool:
        return True

    @override
    async def create_proposal(
        self,
        proposal_id: str,
        title: str,
        ciphertext: bytes,
        proof: bytes,
        public_value1: int,
        public_value2: int,
        description: str,
        *,
        sender: str,
    ) -> Transaction:
        handle = "0x" + ciphertext.hex()
        if self.verifier and not self.verifier.verify_input_proof(
            handle, self.contract_address, sender, proof
        ):
            raise LedgerRevertError("Invalid input proof")
        if proposal_id in self.proposals:
            raise LedgerRevertError("Business data already exists")

        def apply() -> None:
            if proposal_id in self.proposals:
                raise LedgerRevertError("Business data already exists")
            self.proposals[proposal_id] = _ProposalState(
                title=title,
                description=description,
                handle=handle,
                public_value1=public_value1,
                public_value2=public_value2,
                creator=sender,
                timestamp=int(self.clock()),
            )

        return InMemoryTransaction(
            self, self._next_tx_hash("create", proposal_id), apply
        )

    @override
    async def submit_decryption_proof(
        self,
        proposal_id: str,
        clear_values_encoded: bytes,
        proof: bytes,
        *,
        sender: str,
    ) -> Transaction:
        state = self._require(proposal_id)
        # Gas estimation would already revert here on a real node.
        if state.is_verified:
            raise AlreadyVerifiedError(ALREADY_VERIFIED_REASON)
        if self.verifier and not self.verifier.check_signatures(
            [state.handle], clear_values_encoded, proof
        ):
            raise LedgerRevertError("Invalid decryption proof")
        (value,) = decode(["uint32"], clear_values_encoded)

        def apply() -> None:
            if state.is_verified:
                raise AlreadyVerifiedError(ALREADY_VERIFIED_REASON)
            state.is_verified = True
            state.decrypted_value = int(value)

        return InMemoryTransaction(
            self, self._next_tx_hash("verify", proposal_id, sender), apply
        )
