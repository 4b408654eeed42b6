from typing import Awaitable, Callable, List
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

CloseCallback = Callable[[], Awaitable[None]]


class ManagedStreamingResponse(StreamingResponse):
    """
    StreamingResponse that runs close callbacks once the response is over,
    whether the body finished, failed, or the client disconnected and the
    send was cancelled.
    """

    def __init__(self, *args, on_close: List[CloseCallback] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.on_close = list(on_close or [])

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            for callback in self.on_close:
                await callback()
