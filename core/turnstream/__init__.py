"""
turnstream - client-side consumer for app-builder chat turn streams.

Decodes the backend's event stream, reduces it into per-conversation state
with frame-batched updates, and replays interrupted turns from their last
event id.

Usage:
    from turnstream.runtime import TurnOrchestrator
    from turnstream.transport import HttpTurnTransport

    async with HttpTurnTransport() as transport:
        orchestrator = TurnOrchestrator(transport)
        outcome = await orchestrator.start_turn("Build a todo app")
"""

__version__ = "0.1.0"
