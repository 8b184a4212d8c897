from typing import Any

import structlog
from eth_account import Account
from typing_extensions import override
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from ..models.exceptions import (
    AlreadyVerifiedError,
    LedgerError,
    LedgerRevertError,
    ProposalNotFoundError,
    TransactionRejectedError,
)
from ..models.vote_models import ProposalData, TransactionReceipt
from .contract_abi import VOTE_CONTRACT_ABI
from .ledger_gateway import LedgerGateway, Transaction

logger = structlog.stdlib.get_logger()

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001


def translate_ledger_error(exc: Exception) -> LedgerError:
    """Map a web3 / JSON-RPC failure onto the gateway error taxonomy."""
    if isinstance(exc, LedgerError):
        return exc

    raw_message = getattr(exc, "message", None)
    message = raw_message if isinstance(raw_message, str) else str(exc)
    lowered = message.lower()

    code = None
    for arg in getattr(exc, "args", ()):
        if isinstance(arg, dict) and "code" in arg:
            code = arg.get("code")
            message = str(arg.get("message", message))
            lowered = message.lower()
            break
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error") or {}
        code = error.get("code", code)

    if code == USER_REJECTED_CODE or "user rejected" in lowered or (
        "user denied" in lowered
    ):
        return TransactionRejectedError(message)

    if isinstance(exc, ContractLogicError) or "execution reverted" in lowered:
        reason = message.removeprefix("execution reverted: ")
        if "already verified" in lowered:
            return AlreadyVerifiedError(reason)
        if "does not exist" in lowered:
            return ProposalNotFoundError(reason)
        return LedgerRevertError(reason)

    return LedgerError(message)


class Web3Transaction(Transaction):
    def __init__(self, w3: AsyncWeb3, tx_hash: bytes, timeout: float):
        self.w3 = w3
        self.tx_hash = "0x" + bytes(tx_hash).hex()
        self._raw_hash = tx_hash
        self.timeout = timeout

    @override
    async def wait(self) -> TransactionReceipt:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                self._raw_hash, timeout=self.timeout
            )
        except TimeExhausted as e:
            raise LedgerError(f"Transaction {self.tx_hash} not mined in time") from e

        if receipt["status"] != 1:
            raise await self._revert_error(receipt["blockNumber"])

        return TransactionReceipt(
            tx_hash=self.tx_hash,
            block_number=receipt["blockNumber"],
            status=receipt["status"],
        )

    async def _revert_error(self, block_number: int) -> LedgerError:
        """
        Receipts carry no revert reason, so replay the mined transaction
        against the state of its block and translate what the contract says.
        """
        try:
            tx = await self.w3.eth.get_transaction(self._raw_hash)
            await self.w3.eth.call(
                {
                    "from": tx["from"],
                    "to": tx["to"],
                    "data": tx["input"],
                    "value": tx["value"],
                },
                block_identifier=block_number,
            )
        except Exception as e:
            error = translate_ledger_error(e)
            if isinstance(error, LedgerRevertError):
                return error
            logger.warning(
                "ledger.revert_replay_failed", tx_hash=self.tx_hash, exc_info=True
            )
        return LedgerRevertError(f"Transaction {self.tx_hash} reverted")


class Web3LedgerGateway(LedgerGateway):
    """Voting contract access over an EVM JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        chain_id: int,
        private_key: str | None = None,
        receipt_timeout: float = 120.0,
    ):
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.contract_address = AsyncWeb3.to_checksum_address(contract_address)
        self.contract = self.w3.eth.contract(
            address=self.contract_address, abi=VOTE_CONTRACT_ABI
        )
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.account = Account.from_key(private_key) if private_key else None

    async def _call(self, fn_name: str, *args: Any) -> Any:
        try:
            return await getattr(self.contract.functions, fn_name)(*args).call()
        except Exception as e:
            raise translate_ledger_error(e) from e

    async def _transact(self, sender: str, fn_name: str, *args: Any) -> Transaction:
        fn = getattr(self.contract.functions, fn_name)(*args)
        try:
            if self.account is not None:
                # Locally held key: build, sign and broadcast ourselves.
                tx = await fn.build_transaction(
                    {
                        "from": self.account.address,
                        "nonce": await self.w3.eth.get_transaction_count(
                            self.account.address, "pending"
                        ),
                        "chainId": self.chain_id,
                    }
                )
                signed = self.account.sign_transaction(tx)
                tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            else:
                tx_hash = await fn.transact(
                    {"from": AsyncWeb3.to_checksum_address(sender)}
                )
        except Exception as e:
            raise translate_ledger_error(e) from e

        logger.debug("ledger.submitted", fn=fn_name, tx_hash=bytes(tx_hash).hex())
        return Web3Transaction(self.w3, tx_hash, self.receipt_timeout)

    @override
    async def list_proposal_ids(self) -> list[str]:
        return list(await self._call("getAllBusinessIds"))

    @override
    async def get_proposal(self, proposal_id: str) -> ProposalData:
        (
            name,
            _public_value1,
            public_value2,
            description,
            creator,
            timestamp,
            is_verified,
            decrypted_value,
        ) = await self._call("getBusinessData", proposal_id)
        return ProposalData(
            title=name,
            description=description,
            public_vote_count=int(public_value2),
            timestamp=int(timestamp),
            creator=creator,
            is_verified=bool(is_verified),
            revealed_value=int(decrypted_value),
        )

    @override
    async def get_encrypted_handle(self, proposal_id: str) -> str:
        raw = await self._call("getEncryptedValue", proposal_id)
        return "0x" + bytes(raw).hex()

    @override
    async def is_service_available(self) -> bool:
        return bool(await self._call("isAvailable"))

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
        return await self._transact(
            sender,
            "createBusinessData",
            proposal_id,
            title,
            ciphertext,
            proof,
            public_value1,
            public_value2,
            description,
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
        return await self._transact(
            sender, "verifyDecryption", proposal_id, clear_values_encoded, proof
        )
