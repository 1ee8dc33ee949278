# bzzdb/errors.py
"""
Exception hierarchy for bzzdb.

Every failure raised by the package derives from BzzError so callers can
catch the whole family, or match on a specific kind.
"""

from typing import Optional


class BzzError(Exception):
    """Base class for all bzzdb errors."""


class NotFoundError(BzzError):
    """Key, feed update or blob is absent."""


class InvalidTicketError(BzzError):
    """The postage batch ID is unknown to the node."""


class TicketCapacityExceededError(BzzError):
    """An upload would exceed the postage batch's provisioned capacity."""


class TicketPurchaseError(BzzError, ValueError):
    """Postage batch purchase parameters were rejected."""


class InvalidAmountError(TicketPurchaseError):
    """Batch amount must be a positive non zero value."""


class InvalidDepthError(TicketPurchaseError):
    """Batch depth is not in the accepted range."""


class InvalidSignedUpdateError(BzzError):
    """A signed feed update failed validation."""


class TransportError(BzzError):
    """
    Network or decoding failure reported by a transport client.

    Attributes:
        operation: Name of the client operation that failed
    """

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class NodeAPIError(TransportError):
    """Non-success response from the node API."""

    def __init__(self, operation: str, code: int, message: Optional[str] = None):
        super().__init__(operation, f"api error: code {code}, message: {message}")
        self.code = code
        self.message = message


class ContextError(BzzError):
    """Base class for cancellation errors."""


class ContextCancelledError(ContextError):
    """The operation's context was cancelled."""


class DeadlineExceededError(ContextError):
    """The operation's context deadline passed."""


class StoreClosedError(BzzError):
    """The store was used after close()."""
