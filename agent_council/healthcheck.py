"""Backend health checks: reach the backend, then ping the models we plan to use."""

import asyncio
import logging

from agent_council.backends.base import InferenceClient

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def check_backend(client: InferenceClient) -> tuple[bool, str, list[str]]:
    """List the backend's models. Returns (ok, error_message, models)."""
    try:
        models = await asyncio.wait_for(client.list_models(), timeout=_TIMEOUT_SEC)
    except Exception as exc:
        logger.debug("Backend %s unreachable: %s", client.name(), exc)
        return False, str(exc), []
    return True, "", models


async def _ping_one(client: InferenceClient, model: str) -> tuple[str, bool, str]:
    try:
        await asyncio.wait_for(
            client.chat(model, [{"role": "user", "content": _PING_PROMPT}]),
            timeout=_TIMEOUT_SEC,
        )
        return model, True, ""
    except Exception as exc:
        return model, False, str(exc)


async def run_health_checks(client: InferenceClient, models: list[str]) -> dict[str, tuple[bool, str]]:
    """Ping every model in parallel.

    Returns:
        Dict mapping model name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_ping_one(client, m) for m in dict.fromkeys(models)))
    return {model: (ok, err) for model, ok, err in results}
