from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..dependencies import get_orchestrator, get_status_channel
from ..models.exceptions import VoteNotFoundError
from ..models.vote_models import (
    ChartSeries,
    TransactionStatus,
    VoteCreate,
    VoteRecord,
    VoteStats,
)
from ..services.status_channel import TransactionStatusChannel
from ..services.vote_lifecycle import VoteLifecycleOrchestrator

router = APIRouter()

Orchestrator = Annotated[VoteLifecycleOrchestrator, Depends(get_orchestrator)]


class DashboardResponse(BaseModel):
    stats: VoteStats
    chart: ChartSeries


class RevealResponse(BaseModel):
    vote_id: str
    revealed_value: int


class AvailabilityResponse(BaseModel):
    available: bool


@router.get("/votes", response_model=list[VoteRecord])
async def list_votes(orchestrator: Orchestrator, refresh: bool = False):
    if refresh:
        return await orchestrator.refresh()
    return orchestrator.store.records


@router.post("/votes/refresh", response_model=list[VoteRecord])
async def refresh_votes(orchestrator: Orchestrator):
    return await orchestrator.refresh()


@router.get("/votes/dashboard", response_model=DashboardResponse)
async def dashboard(orchestrator: Orchestrator):
    return DashboardResponse(
        stats=orchestrator.store.stats, chart=orchestrator.store.chart
    )


@router.get("/votes/{vote_id}", response_model=VoteRecord)
async def get_vote(vote_id: str, orchestrator: Orchestrator):
    record = orchestrator.store.get(vote_id)
    if record is None:
        raise VoteNotFoundError(f"Vote {vote_id} not found")
    return record


@router.post("/votes", status_code=201, response_model=VoteRecord | None)
async def create_vote(vote_create: VoteCreate, orchestrator: Orchestrator):
    return await orchestrator.create_vote(vote_create)


@router.post("/votes/{vote_id}/reveal", response_model=RevealResponse)
async def reveal_vote(vote_id: str, orchestrator: Orchestrator):
    value = await orchestrator.reveal(vote_id)
    return RevealResponse(vote_id=vote_id, revealed_value=value)


@router.post("/encryption/initialize", status_code=204)
async def initialize_encryption(orchestrator: Orchestrator):
    await orchestrator.initialize_encryption()


@router.get("/ledger/availability", response_model=AvailabilityResponse)
async def ledger_availability(orchestrator: Orchestrator):
    return AvailabilityResponse(available=await orchestrator.check_availability())


@router.get("/status", response_model=TransactionStatus)
async def current_status(
    channel: Annotated[TransactionStatusChannel, Depends(get_status_channel)],
):
    return channel.current()
