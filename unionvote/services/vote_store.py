import structlog

from ..gateways.ledger_gateway import LedgerGateway
from ..models.exceptions import ReadFailedError
from ..models.vote_models import ChartSeries, VoteRecord, VoteStats
from .stats import chart_series, compute_stats

logger = structlog.stdlib.get_logger()


class VoteRecordStore:
    """
    Point-in-time snapshot of every proposal on the ledger.
    A refresh re-reads everything and swaps the snapshot in one assignment.
    """

    ledger: LedgerGateway
    _records: list[VoteRecord]

    def __init__(self, ledger: LedgerGateway):
        self.ledger = ledger
        self._records = []

    @property
    def records(self) -> list[VoteRecord]:
        return list(self._records)

    def get(self, vote_id: str) -> VoteRecord | None:
        for record in self._records:
            if record.id == vote_id:
                return record
        return None

    @property
    def stats(self) -> VoteStats:
        return compute_stats(self._records)

    @property
    def chart(self) -> ChartSeries:
        return chart_series(self._records)

    async def _read_record(self, vote_id: str) -> VoteRecord:
        proposal = await self.ledger.get_proposal(vote_id)
        handle = await self.ledger.get_encrypted_handle(vote_id)
        return VoteRecord(
            id=vote_id,
            title=proposal.title,
            description=proposal.description,
            creator_address=proposal.creator,
            created_at=proposal.timestamp,
            public_vote_count=proposal.public_vote_count,
            encrypted_value_handle=handle,
            is_verified=proposal.is_verified,
            revealed_value=proposal.revealed_value,
        )

    async def refresh(self) -> list[VoteRecord]:
        """
        Replace the snapshot with current ledger state. Records that fail to
        read are logged and left out; failing to enumerate ids raises
        ReadFailedError and keeps the previous snapshot.
        """
        try:
            vote_ids = await self.ledger.list_proposal_ids()
        except Exception as e:
            logger.error("store.enumerate_failed", exc_info=True)
            raise ReadFailedError("Failed to list proposals") from e

        records: list[VoteRecord] = []
        for vote_id in vote_ids:
            try:
                records.append(await self._read_record(vote_id))
            except Exception:
                logger.warning("store.record_skipped", vote_id=vote_id, exc_info=True)

        self._records = records
        logger.info(
            "store.refreshed",
            total=len(records),
            skipped=len(vote_ids) - len(records),
        )
        return self.records

    def clear(self):
        """Helper for testing to reset state."""
        self._records = []
