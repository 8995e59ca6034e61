"""Generation backend: Anthropic streaming over an assembled context."""

from collections.abc import AsyncIterator
from dataclasses import dataclass

from interviewmate.core.conversation import ChatTurn
from interviewmate.core.errors import UpstreamTransientError, friendly_upstream_message, is_transient_upstream
from interviewmate.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters for a single generation call."""

    model: str
    max_tokens: int = 2048
    temperature: float = 0.7


def to_provider_messages(turns: list[ChatTurn]) -> list[dict[str, str]]:
    """
    Normalise chat turns into an alternating user/assistant message list.

    Consecutive turns from the same side are merged and leading assistant
    turns are dropped, since the conversation has to open with the user.
    """
    messages: list[dict[str, str]] = []
    for turn in turns:
        if not turn.content:
            continue
        if not messages and turn.kind != "user":
            continue
        if messages and messages[-1]["role"] == turn.kind:
            messages[-1]["content"] += "\n" + turn.content
        else:
            messages.append({"role": turn.kind, "content": turn.content})
    return messages


class AnthropicGenerationBackend:
    """Streams text deltas from the Anthropic Messages API."""

    def __init__(self, api_key: str):
        self._api_key = api_key

    async def stream_text(
        self,
        system: str,
        turns: list[ChatTurn],
        params: GenerationParams,
    ) -> AsyncIterator[str]:
        """
        Yield text deltas in emission order.

        Closing the iterator early exits the SDK stream context, which
        cancels the upstream request.

        Raises:
            UpstreamTransientError: backend overloaded or unreachable
        """
        # Import here to avoid loading if API key not set
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic(api_key=self._api_key)
        messages = to_provider_messages(turns)

        try:
            async with client.messages.stream(
                model=params.model,
                max_tokens=params.max_tokens,
                temperature=params.temperature,
                system=system,
                messages=messages,
            ) as stream:
                async for event in stream:
                    if getattr(event, "type", None) == "content_block_delta":
                        text = getattr(getattr(event, "delta", None), "text", None)
                        if text:
                            yield text
        except Exception as e:
            if not is_transient_upstream(e):
                raise
            logger.warning(f"Generation backend unavailable ({type(e).__name__}): {e}")
            raise UpstreamTransientError(friendly_upstream_message(e)) from e
