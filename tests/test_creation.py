from unittest.mock import AsyncMock

import pytest

from tests.conftest import make_vote
from unionvote.gateways.fhe_gateway import EncryptionGateway, LocalCoprocessor
from unionvote.models.exceptions import (
    CoprocessorError,
    EncryptionFailedError,
    LedgerRevertError,
    NotConnectedError,
    NotInitializedError,
    SubmissionFailedError,
    SubmissionRejectedError,
    TransactionRejectedError,
)
from unionvote.models.vote_models import StatusKind


async def test_create_vote_lands_on_ledger_unverified(orchestrator, ledger):
    record = await orchestrator.create_vote(make_vote(value=7))

    assert record is not None
    assert record.id == "vote-1"
    assert record.is_verified is False
    assert record.public_vote_count == 0
    assert record.encrypted_value_handle is not None

    assert record.id in await ledger.list_proposal_ids()
    proposal = await ledger.get_proposal(record.id)
    assert proposal.is_verified is False
    assert proposal.creator == orchestrator.wallet.address

    status = orchestrator.status.current()
    assert status.kind == StatusKind.SUCCESS
    assert status.message == "Vote created!"


async def test_create_vote_refreshes_store_with_exactly_one_new_record(orchestrator):
    await orchestrator.create_vote(make_vote(title="First"))
    assert len(orchestrator.store.records) == 1

    await orchestrator.create_vote(make_vote(title="Second"))
    titles = [r.title for r in orchestrator.store.records]
    assert titles == ["First", "Second"]


async def test_encryption_failure_makes_no_ledger_write(make_orchestrator, ledger):
    encryption = AsyncMock(spec=EncryptionGateway)
    encryption.is_initialized = True
    encryption.encrypt.side_effect = CoprocessorError("relayer unreachable")
    ledger.create_proposal = AsyncMock(wraps=ledger.create_proposal)

    orchestrator = make_orchestrator(encryption=encryption)
    with pytest.raises(EncryptionFailedError):
        await orchestrator.create_vote(make_vote())

    ledger.create_proposal.assert_not_called()
    assert await ledger.list_proposal_ids() == []
    status = orchestrator.status.current()
    assert status.kind == StatusKind.ERROR
    assert status.message == "Encryption failed"


async def test_disconnected_wallet_rejected_before_any_gateway_call(make_orchestrator):
    encryption = AsyncMock(spec=EncryptionGateway)
    encryption.is_initialized = True
    orchestrator = make_orchestrator(wallet=None, encryption=encryption)

    with pytest.raises(NotConnectedError):
        await orchestrator.create_vote(make_vote())

    encryption.encrypt.assert_not_called()
    assert orchestrator.status.current().message == "Please connect wallet first"


async def test_uninitialized_encryption_is_refused(make_orchestrator, ledger):
    fresh = LocalCoprocessor()
    orchestrator = make_orchestrator(encryption=fresh)

    with pytest.raises(NotInitializedError):
        await orchestrator.create_vote(make_vote())
    assert await ledger.list_proposal_ids() == []


async def test_signer_rejection_is_reported_distinctly(orchestrator, ledger):
    ledger.create_proposal = AsyncMock(
        side_effect=TransactionRejectedError("user rejected transaction")
    )

    with pytest.raises(SubmissionRejectedError):
        await orchestrator.create_vote(make_vote())
    assert orchestrator.status.current().message == "Transaction rejected"


async def test_wallet_rejection_message_without_typed_error(orchestrator, ledger):
    ledger.create_proposal = AsyncMock(
        side_effect=ValueError("MetaMask Tx Signature: User rejected transaction.")
    )

    with pytest.raises(SubmissionRejectedError):
        await orchestrator.create_vote(make_vote())


async def test_other_submission_failures_are_generic(orchestrator, ledger):
    ledger.create_proposal = AsyncMock(side_effect=LedgerRevertError("out of gas"))

    with pytest.raises(SubmissionFailedError) as exc_info:
        await orchestrator.create_vote(make_vote())

    assert isinstance(exc_info.value.__cause__, LedgerRevertError)
    assert orchestrator.status.current().message == "Submission failed"


async def test_colliding_ids_are_not_deduplicated(make_orchestrator, ledger):
    orchestrator = make_orchestrator(id_factory=lambda: "vote-same")

    await orchestrator.create_vote(make_vote(title="One"))
    with pytest.raises(SubmissionFailedError):
        await orchestrator.create_vote(make_vote(title="Two"))

    proposal = await ledger.get_proposal("vote-same")
    assert proposal.title == "One"


async def test_failures_are_not_retried(orchestrator, ledger):
    ledger.create_proposal = AsyncMock(side_effect=LedgerRevertError("nonce too low"))

    with pytest.raises(SubmissionFailedError):
        await orchestrator.create_vote(make_vote())
    assert ledger.create_proposal.await_count == 1


async def test_initialize_encryption_once_connected(make_orchestrator):
    fresh = LocalCoprocessor()
    orchestrator = make_orchestrator(encryption=fresh, decryption=fresh)

    await orchestrator.initialize_encryption()
    assert fresh.is_initialized

    # Second call is a no-op
    await orchestrator.initialize_encryption()


async def test_initialize_encryption_failure(make_orchestrator):
    encryption = AsyncMock(spec=EncryptionGateway)
    encryption.is_initialized = False
    encryption.initialize.side_effect = RuntimeError("wasm load failed")
    orchestrator = make_orchestrator(encryption=encryption)

    with pytest.raises(NotInitializedError):
        await orchestrator.initialize_encryption()
    assert orchestrator.status.current().message == "FHE initialization failed"
