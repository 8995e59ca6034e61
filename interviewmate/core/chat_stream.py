"""Chat streaming engine: forward generation tokens and persist the reply once.

State machine: IDLE -> STREAMING -> COMPLETED | FAILED.

Tokens are forwarded to the caller as they arrive while being accumulated.
Only a stream that completes hands its full text to ``on_complete``; a
backend error, a timeout or a client disconnect discards the accumulator,
so half-finished replies never reach the transcript.
"""

import asyncio
import json
from collections.abc import AsyncGenerator, Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

from interviewmate.core.context_assembler import AssembledContext
from interviewmate.core.conversation import ChatTurn
from interviewmate.core.errors import friendly_upstream_message
from interviewmate.core.llm import GenerationParams
from interviewmate.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationBackend(Protocol):
    def stream_text(
        self, system: str, turns: list[ChatTurn], params: GenerationParams
    ) -> Any: ...


OnComplete = Callable[[str], Awaitable[None]]


class GenerationTimeoutError(TimeoutError):
    """Generation exceeded its time limit."""


def _sse_event(data: dict) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data)}\n\n"


class GenerationStreamController:
    """Drives one streaming generation call for one chat request."""

    def __init__(
        self,
        backend: GenerationBackend,
        context: AssembledContext,
        params: GenerationParams,
        on_complete: OnComplete,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        conversation_id: str = "",
    ):
        self._backend = backend
        self._context = context
        self._params = params
        self._on_complete = on_complete
        self.timeout_seconds = timeout_seconds
        self.conversation_id = conversation_id
        self.state = StreamState.IDLE
        self.error: BaseException | None = None
        self._chunks: list[str] = []

    @property
    def full_text(self) -> str:
        return "".join(self._chunks)

    async def stream(self) -> AsyncGenerator[str, None]:
        """
        Yield SSE events: text* then done, or text* then error.

        Raises:
            RuntimeError: If the controller was already used
        """
        if self.state is not StreamState.IDLE:
            raise RuntimeError(f"Stream already {self.state.value}")

        self.state = StreamState.STREAMING
        tokens = self._backend.stream_text(
            self._context.system, self._context.turns, self._params
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise GenerationTimeoutError(
                        f"Generation exceeded {self.timeout_seconds}s"
                    )
                try:
                    token = await asyncio.wait_for(anext(tokens), timeout=remaining)
                except StopAsyncIteration:
                    self.state = StreamState.COMPLETED
                    break
                except TimeoutError as e:
                    raise GenerationTimeoutError(
                        f"Generation exceeded {self.timeout_seconds}s"
                    ) from e

                self._chunks.append(token)
                yield _sse_event({"type": "text", "content": token})

            await self._complete()

        except Exception as e:
            self._fail(e)
            yield _sse_event({"type": "error", "message": friendly_upstream_message(e)})
            return

        finally:
            if self.state is StreamState.STREAMING:
                # Client went away mid-stream
                self._fail(None)
            await self._close(tokens)

        yield _sse_event({"type": "done"})

    def _fail(self, error: BaseException | None) -> None:
        self.state = StreamState.FAILED
        self.error = error
        discarded = len(self._chunks)
        self._chunks = []
        if error is None:
            logger.warning(
                f"Chat stream cancelled for conversation {self.conversation_id}, "
                f"discarded {discarded} chunks"
            )
        else:
            logger.error(
                f"Chat stream failed for conversation {self.conversation_id}: {error}",
                exc_info=error,
            )

    async def _complete(self) -> None:
        text = self.full_text
        if not text.strip():
            logger.info(f"Empty completion for conversation {self.conversation_id}, nothing to persist")
            return
        try:
            await self._on_complete(text)
        except Exception as e:
            # The reply has already been delivered; persistence is best-effort from here
            logger.error(
                f"Failed to schedule persistence for conversation {self.conversation_id}: {e}",
                exc_info=True,
            )

    @staticmethod
    async def _close(tokens: Any) -> None:
        aclose = getattr(tokens, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug(f"Error closing generation stream: {e}")
