import pytest

from unionvote.models.vote_models import StatusKind
from unionvote.services.status_channel import TransactionStatusChannel


def test_idle_by_default(status_channel):
    status = status_channel.current()
    assert status.kind == StatusKind.IDLE
    assert not status.visible


def test_success_expires_after_display_window(status_channel, clock):
    status_channel.success("Vote created!")
    clock.advance(1.9)
    assert status_channel.current().message == "Vote created!"

    clock.advance(0.2)
    assert status_channel.current().kind == StatusKind.IDLE


def test_error_stays_longer_than_success(status_channel, clock):
    status_channel.error("Submission failed")
    clock.advance(2.5)
    assert status_channel.current().kind == StatusKind.ERROR

    clock.advance(0.5)
    assert status_channel.current().kind == StatusKind.IDLE


def test_pending_persists_until_next_transition(status_channel, clock):
    status_channel.pending("Processing transaction...")
    clock.advance(600)
    assert status_channel.current().kind == StatusKind.PENDING

    status_channel.success("Vote created!")
    assert status_channel.current().kind == StatusKind.SUCCESS


@pytest.mark.asyncio
async def test_subscribers_receive_every_event(status_channel):
    queue = status_channel.register()

    status_channel.pending("Decrypting...")
    status_channel.success("Verified!")

    first = await queue.get()
    second = await queue.get()
    assert (first.kind, first.message) == (StatusKind.PENDING, "Decrypting...")
    assert (second.kind, second.message) == (StatusKind.SUCCESS, "Verified!")

    status_channel.unregister(queue)
    status_channel.error("Decryption failed")
    assert queue.empty()


def test_stalled_subscriber_keeps_only_latest_events(clock):
    channel = TransactionStatusChannel(clock=clock, max_queued=2)
    queue = channel.register()

    channel.pending("Creating vote with FHE...")
    channel.pending("Processing transaction...")
    channel.success("Vote created!")

    assert queue.qsize() == 2
    assert queue.get_nowait().message == "Processing transaction..."
    assert queue.get_nowait().message == "Vote created!"
