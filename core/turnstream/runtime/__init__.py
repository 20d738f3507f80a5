"""Turn runtime: frame scheduling, batching, accumulation, replay, orchestration."""

from turnstream.runtime.accumulator import (
    AccumulationResult,
    Carryover,
    TurnAccumulator,
    merge_results,
)
from turnstream.runtime.dispatcher import FrameBatchedDispatcher
from turnstream.runtime.orchestrator import TurnOrchestrator, TurnOutcome
from turnstream.runtime.processor import (
    DISCONNECTED_ERROR,
    REPLAY_FAILED_ERROR,
    ReplayState,
    StreamProcessor,
)
from turnstream.runtime.scheduler import FrameScheduler

__all__ = [
    "AccumulationResult",
    "Carryover",
    "TurnAccumulator",
    "merge_results",
    "FrameBatchedDispatcher",
    "FrameScheduler",
    "StreamProcessor",
    "ReplayState",
    "DISCONNECTED_ERROR",
    "REPLAY_FAILED_ERROR",
    "TurnOrchestrator",
    "TurnOutcome",
]
