"""Gateway health checks — ping each model API before starting a deliberation."""

import asyncio
import logging

from deliberation.providers.base import InferenceGateway

logger = logging.getLogger(__name__)

_PING_SYSTEM = "You are a connectivity check."
_PING_PROMPT = 'Reply with the JSON object {"stance": "OK", "confidence": 1.0} only.'
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, gateway: InferenceGateway) -> tuple[str, bool, str]:
    """Ping a single gateway. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(
            gateway.analyze(_PING_SYSTEM, _PING_PROMPT, temperature=0.0),
            timeout=_TIMEOUT_SEC,
        )
        return name, True, ""
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", name, exc)
        return name, False, str(exc) or type(exc).__name__


async def run_health_checks(
    gateways: dict[str, InferenceGateway],
) -> dict[str, tuple[bool, str]]:
    """Ping all gateways in parallel.

    Returns:
        Dict mapping gateway name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, g) for n, g in gateways.items()))
    return {name: (ok, err) for name, ok, err in results}
