"""Model adapter: wraps one provider with timeout, retry and normalization.

The provider only has to answer a prompt or raise. The adapter turns every
outcome into a ModelResponse, so one model's failure never reaches the
dispatcher as an exception.
"""

import asyncio
import logging
import math
import re
import time
from datetime import datetime, timezone

from config.config_loader import DEFAULT_TIMEOUTS, TimeoutConfig
from council_mode.confidence import build_model_confidence
from council_mode.errors import ModelTimeout
from council_mode.models import AdapterContext, ModelConfidence, ModelResponse, ProviderReply, ResponseStatus
from council_mode.providers.base import AIProvider

logger = logging.getLogger(__name__)

MAX_REASONING_STEPS = 5

# Errors that will fail the same way on a second attempt
_PERMANENT_ERROR = re.compile(
    r"\b(?:auth(?:entic\w*|oriz\w*)?|unauthorized|not found|invalid|permission\w*|denied|401|403|404)\b"
)

_URL = re.compile(r"https?://[^\s]+")
_NUMBERED_STEP = re.compile(r"\b\d+\.\s*([^.!?]+[.!?])")
_REASONING_MARKER = re.compile(r"\b(because|therefore|thus|hence|since|first|second|finally)\b", re.IGNORECASE)


def is_retriable(exc: BaseException) -> bool:
    """Timeouts, rate limits and unknown failures are retried; auth and bad requests are not."""
    if isinstance(exc, (TimeoutError, ModelTimeout)):
        return True
    message = str(exc).lower()
    return _PERMANENT_ERROR.search(message) is None


def extract_summary(content: str) -> str:
    """First two substantial sentences, capped at 200 characters."""
    sentences = [s.strip() for s in re.split(r"[.!?]+", content) if len(s.strip()) > 10]
    if not sentences:
        return content[:100]
    summary = ". ".join(sentences[:2])
    if len(summary) > 200:
        return summary[:200] + "..."
    return summary + "."


def extract_sources(content: str) -> list[str]:
    """Unique URLs in order of first appearance."""
    return list(dict.fromkeys(_URL.findall(content)))


def extract_reasoning_chain(content: str) -> list[str]:
    chain = [
        m.group(1).strip()
        for m in _NUMBERED_STEP.finditer(content)
        if 10 < len(m.group(1)) < 200
    ]
    if not chain:
        for sentence in re.split(r"[.!?]+", content):
            stripped = sentence.strip()
            if _REASONING_MARKER.search(sentence) and 10 < len(stripped) < 200:
                chain.append(stripped + ".")
    return chain[:MAX_REASONING_STEPS]


def estimate_tokens(content: str) -> int:
    """Roughly four characters per token."""
    return math.ceil(len(content) / 4)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def failed_response(
    model_id: str,
    display_name: str,
    status: ResponseStatus,
    message: str,
    latency_ms: int,
) -> ModelResponse:
    """A timeout or error record: no content, zero scores."""
    return ModelResponse(
        model_id=model_id,
        display_name=display_name,
        content="",
        summary="",
        confidence=ModelConfidence(raw_score=None, normalized_score=0, reasoning_depth=0),
        latency_ms=latency_ms,
        tokens_used=0,
        timestamp=_now_iso(),
        status=status,
        error_message=message,
    )


class ModelAdapter:
    """One council seat: a provider plus its timeout and retry policy.

    Adapters hold no per-call state and are safe to share across
    concurrent dispatches.
    """

    def __init__(
        self,
        provider: AIProvider,
        model_id: str,
        display_name: str | None = None,
        timeouts: TimeoutConfig = DEFAULT_TIMEOUTS,
    ) -> None:
        self.provider = provider
        self.model_id = model_id
        self.display_name = display_name or model_id
        self._timeouts = timeouts

    @property
    def timeout_ms(self) -> int:
        return self._timeouts.per_model_timeout_ms

    def normalize(self, reply: ProviderReply, latency_ms: int) -> ModelResponse:
        content = reply.content
        return ModelResponse(
            model_id=self.model_id,
            display_name=self.display_name,
            content=content,
            summary=extract_summary(content),
            confidence=build_model_confidence(content),
            sources_cited=extract_sources(content),
            reasoning_chain=extract_reasoning_chain(content),
            latency_ms=latency_ms,
            tokens_used=reply.tokens_used if reply.tokens_used is not None else estimate_tokens(content),
            timestamp=_now_iso(),
            status="success",
        )

    async def execute(self, prompt: str, context: AdapterContext | None = None) -> ModelResponse:
        """Query the provider with per-attempt timeout and retry. Never raises."""
        start = time.monotonic()
        attempts = self._timeouts.retry_attempts + 1
        last_error: BaseException | None = None

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self._timeouts.retry_delay_ms / 1000)
            try:
                reply = await asyncio.wait_for(
                    self.provider.query(prompt, context),
                    timeout=self.timeout_ms / 1000,
                )
                return self.normalize(reply, self._elapsed_ms(start))
            except asyncio.CancelledError:
                raise
            except (TimeoutError, asyncio.TimeoutError):
                last_error = ModelTimeout(self.model_id, self.timeout_ms)
            except Exception as exc:
                last_error = exc

            logger.warning(
                "%s attempt %d/%d failed: %s", self.display_name, attempt, attempts, last_error
            )
            if not is_retriable(last_error):
                break

        latency = self._elapsed_ms(start)
        if isinstance(last_error, ModelTimeout):
            return failed_response(self.model_id, self.display_name, "timeout", str(last_error), latency)
        return failed_response(
            self.model_id, self.display_name, "error", str(last_error) or "Unknown error", latency
        )

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)
