"""Wire protocol: typed stream events and the SSE framing decoder."""

from turnstream.protocol.events import (
    STREAM_EVENT_VERSION,
    BuildStatusEvent,
    CommandEvent,
    DoneEvent,
    ErrorEvent,
    FileContentEvent,
    FileEndEvent,
    FileStartEvent,
    InstallContentEvent,
    InstallEndEvent,
    InstallStartEvent,
    MetaEvent,
    MetaPhase,
    MetricsEvent,
    PreviewUrlEvent,
    ProtocolEvent,
    ProtocolEventType,
    SandboxEndEvent,
    SandboxStartEvent,
    TextEvent,
    ThinkingContentEvent,
    ThinkingEndEvent,
    ThinkingStartEvent,
    UrlScrapeEvent,
    UrlScrapeFailure,
    UrlScrapeSuccess,
    WebSearchEvent,
    WebSearchResultItem,
    parse_event,
)
from turnstream.protocol.sse import FeedResult, SSEFrame, feed

__all__ = [
    "STREAM_EVENT_VERSION",
    "ProtocolEvent",
    "ProtocolEventType",
    "MetaPhase",
    "MetaEvent",
    "TextEvent",
    "ThinkingStartEvent",
    "ThinkingContentEvent",
    "ThinkingEndEvent",
    "FileStartEvent",
    "FileContentEvent",
    "FileEndEvent",
    "InstallStartEvent",
    "InstallContentEvent",
    "InstallEndEvent",
    "SandboxStartEvent",
    "SandboxEndEvent",
    "CommandEvent",
    "WebSearchEvent",
    "WebSearchResultItem",
    "UrlScrapeEvent",
    "UrlScrapeSuccess",
    "UrlScrapeFailure",
    "ErrorEvent",
    "MetricsEvent",
    "PreviewUrlEvent",
    "BuildStatusEvent",
    "DoneEvent",
    "parse_event",
    "FeedResult",
    "SSEFrame",
    "feed",
]
