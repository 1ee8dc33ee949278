# bzzdb/client/__init__.py
"""
Transport clients for the storage node.

- Client: the interface the key-value core consumes
- HttpClient: talks to a Bee node over HTTP
- MockClient: in-memory node for tests and local development
"""

from .base import (
    BUCKET_DEPTH,
    MAX_DEPTH,
    MIN_DEPTH,
    Client,
    FeedIndexResponse,
    Stamp,
    validate_purchase,
)
from .http import HttpClient
from .mock import MockClient

__all__ = [
    "BUCKET_DEPTH",
    "MAX_DEPTH",
    "MIN_DEPTH",
    "Client",
    "FeedIndexResponse",
    "Stamp",
    "validate_purchase",
    "HttpClient",
    "MockClient",
]
