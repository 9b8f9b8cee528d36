"""
Stream adapter: turns a running turn into text chunks for a transport.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable

import structlog

from ..errors import FinanceAgentError
from ..llm import TextEvent
from .core import TurnExecution

logger = structlog.get_logger()

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


class StreamAdapter:
    """Wraps one TurnExecution as a sequence of text chunks.

    Cancellation is checked after every chunk write. The stop signal is the
    execution's own event unless the caller passes ``stop``; the transport's
    ``disconnected`` probe sets it too. Errors never escape :meth:`chunks`;
    they become a single ``[ERROR <code>] <message>`` chunk.
    """

    def __init__(
        self,
        execution: TurnExecution,
        stop: asyncio.Event | None = None,
        disconnected: Callable[[], Awaitable[bool]] | None = None,
    ):
        self.execution = execution
        if stop is not None:
            execution.stop = stop
        self._disconnected = disconnected
        self.chunks_sent = 0

    def abort(self) -> None:
        """Ask the stream to stop at the next chunk boundary."""
        self.execution.stop.set()

    @property
    def aborted(self) -> bool:
        return self.execution.stop.is_set()

    async def _should_stop(self) -> bool:
        if self.execution.stop.is_set():
            return True
        if self._disconnected is not None and await self._disconnected():
            self.execution.stop.set()
            return True
        return False

    async def chunks(self) -> AsyncIterator[str]:
        events = self.execution.events()
        try:
            async for event in events:
                if isinstance(event, TextEvent) and event.text:
                    self.chunks_sent += 1
                    yield event.text
                if await self._should_stop():
                    logger.info(
                        "Stream aborted",
                        session_id=self.execution.key.session_id,
                        chunks_sent=self.chunks_sent,
                    )
                    break
        except FinanceAgentError as e:
            yield e.to_chunk()
        except Exception as e:
            logger.error("Streaming error", error=str(e), error_type=type(e).__name__)
            yield FinanceAgentError(str(e) or type(e).__name__, code=INTERNAL_ERROR_CODE).to_chunk()
        finally:
            try:
                await events.aclose()
            except Exception as e:
                logger.warning("Turn close failed", error=str(e), error_type=type(e).__name__)
