"""Error taxonomy for the swap watcher."""

from typing import Optional


class SwapWatcherError(Exception):
    """Base class for all watcher errors."""


class NetworkError(SwapWatcherError):
    """A chain query or HTTP fetch failed."""


class ProtocolDecodeError(SwapWatcherError):
    """A message payload could not be decoded."""

    def __init__(self, field: str, reason: Optional[str] = None):
        self.field = field
        self.reason = reason
        message = f"failed to decode {field}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnsupportedMetadataKind(SwapWatcherError):
    """Jetton content is neither off-chain, on-chain nor semi-chain."""


class StartupError(SwapWatcherError):
    """The watcher cannot start (network unreachable, bad configuration)."""


class PriceNotFound(SwapWatcherError):
    """Symbol has never been paired against a priced anchor asset."""


class MalformedPoolSymbol(SwapWatcherError):
    """LP symbol does not follow the "X-Y LP" pattern."""
