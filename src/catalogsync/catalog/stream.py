"""
Server-sent event stream over one import job.

Event order: `connected`, then for every progress publication one
`progress` event followed by a `log` event per new log line, then exactly
one terminal `complete` or `error` event.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

from ..models import ImportRequest, ProgressSnapshot
from .importer import BatchImportEngine

logger = logging.getLogger(__name__)

_DONE = object()


@dataclass(frozen=True)
class StreamEvent:
    type: str
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type}
        if self.message is not None:
            payload["message"] = self.message
        if self.data is not None:
            payload["data"] = self.data
        return payload

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict())}\n\n"


class ImportProgressStream:
    """Runs an import job and yields its StreamEvents.

    The request is validated on construction, so a bad request raises
    ValidationError before any event is produced.
    """

    def __init__(
        self,
        engine: BatchImportEngine,
        request: Union[ImportRequest, Mapping[str, Any]],
        cancel_event: Optional[asyncio.Event] = None,
    ):
        if not isinstance(request, ImportRequest):
            request = ImportRequest.parse(**request)
        self.engine = engine
        self.request = request
        self.cancel_event = cancel_event or asyncio.Event()

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[StreamEvent]:
        queue: asyncio.Queue = asyncio.Queue()
        yield StreamEvent("connected", message="Starting import...")

        task = asyncio.create_task(
            self.engine.run(self.request, on_progress=queue.put_nowait, cancel_event=self.cancel_event)
        )
        task.add_done_callback(lambda _: queue.put_nowait(_DONE))

        seen = 0
        try:
            while True:
                snapshot = await queue.get()
                if snapshot is _DONE:
                    break
                yield self._progress_event(snapshot)
                for line in snapshot.logs[seen:]:
                    yield StreamEvent("log", message=line)
                seen = len(snapshot.logs)

            try:
                outcome = task.result()
            except asyncio.CancelledError:
                logger.warning(f"Import stream for {self.request.store_url} was cancelled")
                yield StreamEvent("error", message="Import cancelled")
            except Exception as e:
                logger.warning(f"Import stream for {self.request.store_url} failed: {e}")
                yield StreamEvent("error", message=str(e))
            else:
                yield StreamEvent("complete", data=outcome.to_dict())
        finally:
            if not task.done():
                # Consumer went away mid-job
                self.cancel_event.set()
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    @staticmethod
    def _progress_event(snapshot: ProgressSnapshot) -> StreamEvent:
        return StreamEvent("progress", data=snapshot.to_dict())

    async def sse(self) -> AsyncIterator[str]:
        """Events as `data: <json>\\n\\n` frames."""
        async for event in self.events():
            yield event.to_sse()


__all__ = ["StreamEvent", "ImportProgressStream"]
