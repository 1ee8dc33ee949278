# bzzdb - Mutable key-value store on Swarm feeds
#
# Keeps a conventional has/get/put/delete interface on top of an
# append-only, content-addressed store. Every key is a feed owned by the
# writer's signing key; each put publishes a signed update at the next
# sequence index pointing at an immutable blob.
#
# Core concepts:
# - Topic: feed identifier derived from a key
# - FeedIndexer: allocates sequence indices per topic
# - Postage: caches the postage batch paying for uploads
# - BzzDB: the key-value store composing the above over a node client

from .client import Client, HttpClient, MockClient
from .config import BzzConfig, load_config
from .context import Context, background
from .db import BzzDB, KeyValueStore
from .errors import (
    BzzError,
    ContextCancelledError,
    DeadlineExceededError,
    InvalidAmountError,
    InvalidDepthError,
    InvalidSignedUpdateError,
    InvalidTicketError,
    NodeAPIError,
    NotFoundError,
    StoreClosedError,
    TicketCapacityExceededError,
    TransportError,
)
from .feeds import DELETION_SENTINEL, derive_topic, feed_update_id, feed_update_reference
from .indexer import FeedIndexer
from .postage import Postage
from .signing import Signer, SignedUpdate, sign_update

__all__ = [
    # Core
    "BzzDB",
    "KeyValueStore",
    "FeedIndexer",
    "Postage",
    "Signer",
    "SignedUpdate",
    "sign_update",
    "derive_topic",
    "feed_update_id",
    "feed_update_reference",
    "DELETION_SENTINEL",
    # Transport
    "Client",
    "HttpClient",
    "MockClient",
    # Configuration
    "BzzConfig",
    "load_config",
    "Context",
    "background",
    # Errors
    "BzzError",
    "NotFoundError",
    "InvalidTicketError",
    "TicketCapacityExceededError",
    "InvalidAmountError",
    "InvalidDepthError",
    "InvalidSignedUpdateError",
    "TransportError",
    "NodeAPIError",
    "StoreClosedError",
    "ContextCancelledError",
    "DeadlineExceededError",
]

__version__ = "0.1.0"
