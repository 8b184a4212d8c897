import asyncio
from typing import Annotated

from fastapi import Depends, Header
from redis import asyncio as aioredis

from .config import settings
from .gateways.fhe_gateway import LocalCoprocessor
from .gateways.ledger_gateway import InMemoryLedgerGateway, LedgerGateway
from .models.vote_models import WalletSession
from .services.status_channel import TransactionStatusChannel
from .services.vote_lifecycle import RevealLockManager, VoteLifecycleOrchestrator
from .services.vote_store import VoteRecordStore

WALLET_HEADER = "X-Wallet-Address"

# Singletons that MIGHT capture loop state (initialized lazily per loop)
_redis_clients: dict[asyncio.AbstractEventLoop, aioredis.Redis] = {}
_coprocessors: dict[asyncio.AbstractEventLoop, LocalCoprocessor] = {}
_ledgers: dict[asyncio.AbstractEventLoop, LedgerGateway] = {}
_stores: dict[asyncio.AbstractEventLoop, VoteRecordStore] = {}
_status_channels: dict[asyncio.AbstractEventLoop, TransactionStatusChannel] = {}
_lock_managers: dict[asyncio.AbstractEventLoop, RevealLockManager] = {}


async def get_redis_client() -> aioredis.Redis | None:
    """Returns a singleton Redis client per loop, initialized on first use."""
    if not settings.redis_url:
        return None
    loop = asyncio.get_running_loop()
    if loop not in _redis_clients:
        _redis_clients[loop] = aioredis.from_url(
            str(settings.redis_url), decode_responses=False
        )
    return _redis_clients[loop]


async def get_coprocessor() -> LocalCoprocessor:
    loop = asyncio.get_running_loop()
    if loop not in _coprocessors:
        if settings.is_production or settings.is_staging:
            raise RuntimeError(
                "The local co-processor must not be used in staging/production"
            )
        if not settings.is_in_memory and not settings.allow_local_coprocessor:
            raise RuntimeError(
                "RPC_URL is set but only the local co-processor is available; "
                "set ALLOW_LOCAL_COPROCESSOR=true to pair them on a dev chain"
            )
        _coprocessors[loop] = LocalCoprocessor()
    return _coprocessors[loop]


async def get_ledger_gateway() -> LedgerGateway:
    loop = asyncio.get_running_loop()
    if loop not in _ledgers:
        if settings.is_in_memory:
            _ledgers[loop] = InMemoryLedgerGateway(verifier=await get_coprocessor())
        else:
            from .gateways.web3_ledger_gateway import Web3LedgerGateway

            if not settings.contract_address:
                raise RuntimeError("CONTRACT_ADDRESS must be set when RPC_URL is set")
            _ledgers[loop] = Web3LedgerGateway(
                rpc_url=str(settings.rpc_url),
                contract_address=settings.contract_address,
                chain_id=settings.chain_id,
                private_key=settings.signer_private_key,
                receipt_timeout=settings.receipt_timeout_secs,
            )
    return _ledgers[loop]


async def get_vote_store() -> VoteRecordStore:
    loop = asyncio.get_running_loop()
    if loop not in _stores:
        _stores[loop] = VoteRecordStore(await get_ledger_gateway())
    return _stores[loop]


async def get_status_channel() -> TransactionStatusChannel:
    loop = asyncio.get_running_loop()
    if loop not in _status_channels:
        _status_channels[loop] = TransactionStatusChannel(
            success_ttl=settings.status_success_secs,
            error_ttl=settings.status_error_secs,
        )
    return _status_channels[loop]


async def get_reveal_lock_manager() -> RevealLockManager:
    loop = asyncio.get_running_loop()
    if loop not in _lock_managers:
        _lock_managers[loop] = RevealLockManager()
    return _lock_managers[loop]


async def get_wallet_session(
    x_wallet_address: Annotated[str | None, Header(alias=WALLET_HEADER)] = None,
) -> WalletSession:
    """The browser owns the wallet connection and reports the connected address."""
    return WalletSession(address=x_wallet_address or None)


async def get_orchestrator(
    wallet: Annotated[WalletSession, Depends(get_wallet_session)],
) -> VoteLifecycleOrchestrator:
    """
    Dependency that returns a fresh orchestrator per request, bound to the
    caller's wallet and sharing the per-loop gateways, store and locks.
    """
    coprocessor = await get_coprocessor()
    return VoteLifecycleOrchestrator(
        wallet=wallet,
        ledger=await get_ledger_gateway(),
        encryption=coprocessor,
        decryption=coprocessor,
        store=await get_vote_store(),
        status=await get_status_channel(),
        locks=await get_reveal_lock_manager(),
        redis_client=await get_redis_client(),
        reveal_timeout=settings.reveal_timeout_secs,
    )
