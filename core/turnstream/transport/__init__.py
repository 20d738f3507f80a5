"""Transports that open (and reopen) turn streams."""

from turnstream.transport.base import TurnStream, TurnTransport
from turnstream.transport.http import HttpTurnStream, HttpTurnTransport

__all__ = [
    "TurnStream",
    "TurnTransport",
    "HttpTurnStream",
    "HttpTurnTransport",
]
