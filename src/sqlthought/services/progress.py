"""
Progress channel between a pipeline run and its observer.

The run side calls `emit()` synchronously; the transport side drains
`stream()` (the SSE response, or the demo runner's printer). Guarantees:

- events are delivered in emission order
- only the first terminal event (`complete` or `error`) is delivered;
  anything emitted after it is dropped
- after `close()` every emit is a no-op, never an exception
- `close()` may be called any number of times
"""

import asyncio
from typing import Any, AsyncIterator, Dict, Optional

from ..domain.base_enums import EventType
from ..domain.responses import ProgressEvent
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id


logger = get_module_logger()


class ProgressEmitter:
    """
    Ordered, close-tolerant event channel backed by an asyncio.Queue.

    Usage:
        emitter = ProgressEmitter()
        task = asyncio.create_task(service.run(question, emitter))
        async for event in emitter.stream():
            print(event.to_sse())
    """

    def __init__(self):
        # None marks the end of the stream
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        """True once a terminal event has been accepted."""
        return self._finished

    def emit(self, event_type: EventType, payload: Optional[Dict[str, Any]] = None) -> bool:
        """
        Queue one event.

        Returns:
            True if the event was accepted, False if it was dropped
        """
        if self._closed:
            return False

        if self._finished:
            logger.warning(
                "Dropping event emitted after terminal event",
                event_type=event_type.value,
                trace_id=current_trace_id(),
            )
            return False

        self._queue.put_nowait(ProgressEvent(type=event_type, data=payload or {}))

        if event_type.is_terminal:
            self._finished = True
            self._queue.put_nowait(None)

        return True

    def close(self) -> None:
        """Stop accepting events and end any pending `stream()`."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def stream(self) -> AsyncIterator[ProgressEvent]:
        """Yield events until the terminal event or until the channel is closed."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def sse_messages(self) -> AsyncIterator[str]:
        """
        Yield `stream()` rendered as SSE messages.

        An event whose payload cannot be serialized is replaced by an `error`
        event and ends the stream, so the observer still sees a terminal event.
        """
        async for event in self.stream():
            try:
                message = event.to_sse()
            except (TypeError, ValueError) as e:
                logger.error(
                    "Failed to serialize progress event",
                    event_type=event.type.value,
                    error=str(e),
                    trace_id=current_trace_id(),
                )
                self._finished = True
                yield ProgressEvent(
                    type=EventType.ERROR,
                    data={"error": f"Failed to serialize {event.type.value} event"},
                ).to_sse()
                return
            yield message
