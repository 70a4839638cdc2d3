"""Readiness check for council members, run before the first query of a session."""

import asyncio
import logging
import time
from dataclasses import dataclass

from council_mode.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


@dataclass
class HealthStatus:
    model_id: str
    ok: bool
    latency_ms: int
    error: str = ""

    @property
    def short_error(self) -> str:
        """First line of the error, clipped for a one-line status row."""
        return self.error.splitlines()[0][:120] if self.error else "unknown error"


async def check_provider(model_id: str, provider: AIProvider, timeout_sec: float | None = None) -> HealthStatus:
    limit = _TIMEOUT_SEC if timeout_sec is None else timeout_sec
    start = time.monotonic()
    try:
        await asyncio.wait_for(provider.query(_PING_PROMPT), timeout=limit)
    except asyncio.TimeoutError:
        error = f"No reply within {limit:g}s"
    except Exception as exc:
        logger.debug("Probe of %s failed: %s", model_id, exc)
        error = str(exc) or type(exc).__name__
    else:
        error = ""
    latency_ms = int((time.monotonic() - start) * 1000)
    return HealthStatus(model_id=model_id, ok=not error, latency_ms=latency_ms, error=error)


async def run_health_checks(
    providers: dict[str, AIProvider],
    timeout_sec: float | None = None,
) -> list[HealthStatus]:
    """Probe every provider concurrently.

    Returns one HealthStatus per model, sorted by model id so the status
    table reads the same on every run.
    """
    statuses = await asyncio.gather(*(check_provider(m, p, timeout_sec) for m, p in providers.items()))
    return sorted(statuses, key=lambda s: s.model_id)
