from unionvote.models.vote_models import VoteRecord
from unionvote.services.stats import chart_series, compute_stats, truncate_label


def record(
    vote_id: str,
    title: str = "Motion",
    public: int = 0,
    verified: bool = False,
    value: int = 0,
):
    return VoteRecord(
        id=vote_id,
        title=title,
        description="d",
        creator_address="0x" + "00" * 20,
        created_at=0,
        public_vote_count=public,
        is_verified=verified,
        revealed_value=value,
    )


def test_empty_store_stats_are_zero():
    stats = compute_stats([])
    assert stats.total_count == 0
    assert stats.verified_count == 0
    assert stats.average_public_participation == 0


def test_stats_counts_and_mean():
    records = [
        record("1", public=2, verified=True, value=10),
        record("2", public=4),
        record("3", public=9, verified=True, value=1),
    ]
    stats = compute_stats(records)
    assert stats.total_count == 3
    assert stats.verified_count == 2
    assert stats.average_public_participation == 5.0


def test_chart_uses_revealed_value_once_verified():
    records = [
        record("1", public=3, verified=True, value=42),
        record("2", public=3, verified=False, value=99),
    ]
    assert chart_series(records).values == [42, 3]


def test_labels_are_truncated_to_fifteen_characters():
    assert truncate_label("Short") == "Short"
    assert truncate_label("Exactly15Chars!") == "Exactly15Chars!"
    assert truncate_label("Overtime pay for weekend shifts") == "Overtime pay fo..."

    chart = chart_series([record("1", title="Overtime pay for weekend shifts")])
    assert chart.labels == ["Overtime pay fo..."]
