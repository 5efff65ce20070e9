"""Remote session context control after a call."""

from __future__ import annotations

from loguru import logger

from rfcbridge.remote.contracts import RemoteDestination


def end_context_if_requested(destination: RemoteDestination, requested: bool) -> bool:
    """End the destination's session context when asked; returns whether it did."""
    if not requested:
        return False
    destination.end_context()
    logger.debug("Ended remote session context")
    return True
