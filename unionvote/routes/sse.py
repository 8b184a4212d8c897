from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from ..dependencies import get_status_channel
from ..services.status_channel import TransactionStatusChannel

router = APIRouter()


@router.get("/status/stream")
async def stream_status(
    channel: Annotated[TransactionStatusChannel, Depends(get_status_channel)],
):
    async def event_generator() -> AsyncGenerator[dict[str, str], None]:
        queue = channel.register()
        try:
            yield {"event": "status", "data": channel.current().model_dump_json()}
            while True:
                event = await queue.get()
                yield {"event": "status", "data": event.model_dump_json()}
        finally:
            channel.unregister(queue)

    return EventSourceResponse(event_generator())
