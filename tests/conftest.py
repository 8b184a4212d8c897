# ruff: noqa: E402
import os

# Set environment to testing before any other imports
os.environ["UNIONVOTE_ENV"] = "testing"

import asyncio
import itertools
from collections.abc import AsyncGenerator, Callable
from typing_extensions import override
from unittest.mock import AsyncMock, MagicMock

import anyio
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from web3.exceptions import ContractLogicError

from unionvote import dependencies
from unionvote.gateways.fhe_gateway import DecryptionGateway, LocalCoprocessor
from unionvote.gateways.ledger_gateway import InMemoryLedgerGateway
from unionvote.main import app
from unionvote.models.vote_models import (
    DecryptionResult,
    SubmitProof,
    VoteCreate,
    WalletSession,
)
from unionvote.services.status_channel import TransactionStatusChannel
from unionvote.services.vote_lifecycle import (
    RevealLockManager,
    VoteLifecycleOrchestrator,
)
from unionvote.services.vote_store import VoteRecordStore

WALLET = "0x" + "a1" * 20
OTHER_WALLET = "0x" + "b2" * 20


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class GatedDecryption(DecryptionGateway):
    """Counts protocol runs and holds each one until the gate opens."""

    def __init__(self, inner: DecryptionGateway):
        self.inner = inner
        self.gate = asyncio.Event()
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @override
    async def verify(
        self, handles: list[str], contract_address: str, submit_proof: SubmitProof
    ) -> DecryptionResult:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self.gate.wait()
            return await self.inner.verify(handles, contract_address, submit_proof)
        finally:
            self.in_flight -= 1


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    with anyio.fail_after(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


def reverted_web3(reason: str, block_number: int = 42) -> MagicMock:
    """A chain whose transactions are mined with status 0 and replay to `reason`."""
    w3 = MagicMock()
    w3.eth.wait_for_transaction_receipt = AsyncMock(
        return_value={"status": 0, "blockNumber": block_number}
    )
    w3.eth.get_transaction = AsyncMock(
        return_value={
            "from": WALLET,
            "to": "0x" + "5e" * 20,
            "input": b"\x01\x02",
            "value": 0,
        }
    )
    w3.eth.call = AsyncMock(
        side_effect=ContractLogicError(f"execution reverted: {reason}")
    )
    return w3


def make_vote(title: str = "Strike ballot", value: int = 7) -> VoteCreate:
    return VoteCreate(
        title=title,
        description="Should the local walk out on Monday?",
        vote_value=value,
    )


@pytest_asyncio.fixture
async def coprocessor() -> LocalCoprocessor:
    cp = LocalCoprocessor()
    await cp.initialize()
    return cp


@pytest.fixture
def ledger(coprocessor: LocalCoprocessor) -> InMemoryLedgerGateway:
    return InMemoryLedgerGateway(verifier=coprocessor, clock=lambda: 1_700_000_000)


@pytest.fixture
def store(ledger: InMemoryLedgerGateway) -> VoteRecordStore:
    return VoteRecordStore(ledger)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def status_channel(clock: FakeClock) -> TransactionStatusChannel:
    return TransactionStatusChannel(success_ttl=2.0, error_ttl=3.0, clock=clock)


@pytest.fixture
def make_orchestrator(
    ledger: InMemoryLedgerGateway,
    coprocessor: LocalCoprocessor,
    status_channel: TransactionStatusChannel,
):
    ids = itertools.count(1)

    def _make(
        wallet: str | None = WALLET, **overrides: object
    ) -> VoteLifecycleOrchestrator:
        kwargs: dict[str, object] = {
            "wallet": WalletSession(address=wallet),
            "ledger": ledger,
            "encryption": coprocessor,
            "decryption": coprocessor,
            "store": VoteRecordStore(ledger),
            "status": status_channel,
            "locks": RevealLockManager(),
            "reveal_timeout": 5.0,
            "id_factory": lambda: f"vote-{next(ids)}",
        }
        kwargs.update(overrides)
        return VoteLifecycleOrchestrator(**kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def orchestrator(
    make_orchestrator, store: VoteRecordStore
) -> VoteLifecycleOrchestrator:
    return make_orchestrator(store=store)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drops the per-loop singletons so every test starts from an empty ledger."""
    yield
    for registry in (
        dependencies._redis_clients,
        dependencies._coprocessors,
        dependencies._ledgers,
        dependencies._stores,
        dependencies._status_channels,
        dependencies._lock_managers,
    ):
        registry.clear()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={dependencies.WALLET_HEADER: WALLET},
    ) as c:
        yield c
