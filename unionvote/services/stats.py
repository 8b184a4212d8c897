from collections.abc import Sequence

from ..models.vote_models import ChartSeries, VoteRecord, VoteStats

LABEL_MAX_CHARS = 15


def compute_stats(records: Sequence[VoteRecord]) -> VoteStats:
    total = len(records)
    verified = sum(1 for r in records if r.is_verified)
    average = sum(r.public_vote_count for r in records) / total if total else 0.0
    return VoteStats(
        total_count=total,
        verified_count=verified,
        average_public_participation=average,
    )


def truncate_label(title: str, limit: int = LABEL_MAX_CHARS) -> str:
    if len(title) <= limit:
        return title
    return title[:limit] + "..."


def chart_series(records: Sequence[VoteRecord]) -> ChartSeries:
    """One bar per record: the revealed value once verified, else the public count."""
    return ChartSeries(
        labels=[truncate_label(r.title) for r in records],
        values=[
            r.revealed_value if r.is_verified else r.public_vote_count for r in records
        ],
    )
