"""Classification of a server by which of its channels are open (core domain)."""

from __future__ import annotations

from core.models import Classification, ConnectionResult


def classify(result: ConnectionResult) -> Classification:
    """Map the channel-presence pattern of ``result`` to a Classification."""

    has_network = result.network_channel is not None
    has_memory = result.memory_channel is not None
    if has_network and has_memory:
        return Classification.FULL
    if has_network:
        return Classification.NETWORK_ONLY
    if has_memory:
        return Classification.MEMORY_ONLY
    return Classification.NONE
