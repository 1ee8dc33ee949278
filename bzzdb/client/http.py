# bzzdb/client/http.py
"""
HTTP client for the Bee node API.

Usage:
    client = HttpClient("http://localhost")
    batch_id = client.purchase_ticket(10_000_000, 22, immutable=True)
    reference = client.upload(b"hello", batch_id)
    with client.download(reference) as stream:
        data = stream.read()
"""

import http.client
import json
import logging
import socket
from typing import BinaryIO, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..context import Context, background
from ..errors import (
    DeadlineExceededError,
    InvalidTicketError,
    NodeAPIError,
    NotFoundError,
    TicketCapacityExceededError,
    TransportError,
)
from .base import Client, FeedIndexResponse, Stamp, validate_purchase

logger = logging.getLogger(__name__)

API_VERSION = "v1"
USER_AGENT = "bzzdb"
CONTENT_TYPE = "application/json"

HEADER_IMMUTABLE = "Immutable"
HEADER_BATCH_ID = "Swarm-Postage-Batch-Id"
HEADER_FEED_INDEX = "Swarm-Feed-Index"
HEADER_FEED_INDEX_NEXT = "Swarm-Feed-Index-Next"

PORT_API = 1633
PORT_DEBUG_API = 1635


def api_error(operation: str, code: int, message: Optional[str]) -> Exception:
    """Map a node error response to the matching exception."""
    names_batch = "batch" in (message or "").lower()
    if code == 402:
        return TicketCapacityExceededError(f"{operation}: {message}")
    if code in (400, 404) and names_batch:
        return InvalidTicketError(f"{operation}: {message}")
    if code == 404:
        return NotFoundError(f"{operation}: {message}")
    return NodeAPIError(operation, code, message)


def decode_index(value: Optional[str]) -> int:
    """Decode a feed index header (hex of a big-endian uint64)."""
    if not value:
        raise ValueError("missing feed index header")
    return int.from_bytes(bytes.fromhex(value), "big")


def _connection_error(operation: str, error: Exception, ctx: Context) -> Exception:
    if isinstance(error, (socket.timeout, TimeoutError)):
        if ctx.expired:
            return DeadlineExceededError(f"{operation}: context deadline exceeded")
        return TransportError(operation, f"request timed out: {error}")
    return TransportError(operation, f"connection failed: {error}")


class ResponseStream:
    """
    Body of a node response, read lazily.

    Connection failures while reading are raised as TransportError.
    """

    def __init__(self, operation: str, response, ctx: Context):
        self.operation = operation
        self._response = response
        self._ctx = ctx

    def read(self, size: Optional[int] = None) -> bytes:
        try:
            return self._response.read(size)
        except (http.client.HTTPException, OSError) as e:
            raise _connection_error(self.operation, e, self._ctx) from e

    @property
    def headers(self):
        return self._response.headers

    def close(self):
        self._response.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class HttpClient(Client):
    """
    Client for a Bee node.

    Args:
        node_url: Node URL without port (e.g., "http://localhost")
        api_port: Port of the main API
        debug_api_port: Port of the debug API (postage batches)
        timeout: Default request timeout in seconds
    """

    def __init__(
        self,
        node_url: str = "http://localhost",
        api_port: int = PORT_API,
        debug_api_port: int = PORT_DEBUG_API,
        timeout: float = 60,
    ):
        self.node_url = node_url.rstrip("/")
        self.api_port = api_port
        self.debug_api_port = debug_api_port
        self.timeout = timeout

    def _endpoint(self, port: int, *parts: str) -> str:
        return f"{self.node_url}:{port}/{API_VERSION}/" + "/".join(parts)

    def _request(
        self,
        operation: str,
        method: str,
        url: str,
        headers: Dict[str, str] = None,
        body: bytes = None,
        ctx: Optional[Context] = None,
    ):
        """Perform a request and return the open response body (caller closes it)."""
        ctx = ctx or background()
        ctx.check()

        timeout = ctx.remaining()
        if timeout is None or timeout > self.timeout:
            timeout = self.timeout

        req = Request(url, data=body, method=method)
        for name, value in (headers or {}).items():
            req.add_header(name, value)
        req.add_header("User-Agent", USER_AGENT)
        req.add_header("Accept", CONTENT_TYPE)

        logger.debug(f"{method} {url}")
        try:
            return ResponseStream(operation, urlopen(req, timeout=timeout), ctx)
        except HTTPError as e:
            error_body = e.read().decode(errors="replace")
            try:
                message = json.loads(error_body).get("message")
            except (json.JSONDecodeError, AttributeError):
                message = error_body or e.reason
            raise api_error(operation, e.code, message) from e
        except URLError as e:
            raise TransportError(operation, f"failed to connect to node: {e.reason}") from e
        except (http.client.HTTPException, OSError) as e:
            raise _connection_error(operation, e, ctx) from e

    def _request_json(self, operation: str, method: str, url: str, **kwargs) -> dict:
        with self._request(operation, method, url, **kwargs) as response:
            try:
                return json.loads(response.read().decode())
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise TransportError(operation, f"failed to decode response: {e}") from e

    def list_tickets(self, ctx: Optional[Context] = None) -> List[Stamp]:
        data = self._request_json(
            "stamps", "GET", self._endpoint(self.debug_api_port, "stamps"), ctx=ctx,
        )
        try:
            return [Stamp.from_dict(s) for s in data.get("stamps") or []]
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError("stamps", f"failed to decode stamp: {e}") from e

    def purchase_ticket(
        self,
        amount: int,
        depth: int,
        immutable: bool,
        ctx: Optional[Context] = None,
    ) -> str:
        validate_purchase(amount, depth)
        data = self._request_json(
            "buy stamp",
            "POST",
            self._endpoint(self.debug_api_port, "stamps", str(amount), str(depth)),
            headers={HEADER_IMMUTABLE: "true" if immutable else "false"},
            ctx=ctx,
        )
        try:
            return data["batchID"]
        except KeyError as e:
            raise TransportError("buy stamp", "response has no batchID") from e

    def _reference(self, operation: str, data: dict) -> bytes:
        try:
            return bytes.fromhex(data["reference"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(operation, f"invalid reference in response: {e}") from e

    def upload(self, data: bytes, batch_id: str, ctx: Optional[Context] = None) -> bytes:
        resp = self._request_json(
            "upload",
            "POST",
            self._endpoint(self.api_port, "bytes"),
            headers={HEADER_BATCH_ID: batch_id, "Content-Type": "application/octet-stream"},
            body=bytes(data),
            ctx=ctx,
        )
        return self._reference("upload", resp)

    def download(self, reference: bytes, ctx: Optional[Context] = None) -> BinaryIO:
        return self._request(
            "download", "GET", self._endpoint(self.api_port, "bytes", reference.hex()), ctx=ctx,
        )

    def download_chunk(self, reference: bytes, ctx: Optional[Context] = None) -> BinaryIO:
        return self._request(
            "download chunk", "GET", self._endpoint(self.api_port, "chunks", reference.hex()), ctx=ctx,
        )

    def upload_soc(
        self,
        owner: bytes,
        soc_id: bytes,
        data: bytes,
        signature: bytes,
        batch_id: str,
        ctx: Optional[Context] = None,
    ) -> bytes:
        url = self._endpoint(self.api_port, "soc", owner.hex(), soc_id.hex())
        url += f"?sig={signature.hex()}"
        resp = self._request_json(
            "upload soc",
            "POST",
            url,
            headers={HEADER_BATCH_ID: batch_id, "Content-Type": "application/octet-stream"},
            body=bytes(data),
            ctx=ctx,
        )
        return self._reference("upload soc", resp)

    def feed_index_latest(
        self,
        owner: bytes,
        topic: bytes,
        ctx: Optional[Context] = None,
    ) -> FeedIndexResponse:
        url = self._endpoint(self.api_port, "feeds", owner.hex(), topic.hex())
        with self._request("feeds", "GET", url, ctx=ctx) as response:
            try:
                data = json.loads(response.read().decode())
                return FeedIndexResponse(
                    reference=bytes.fromhex(data["reference"]) if data.get("reference") else None,
                    current=decode_index(response.headers.get(HEADER_FEED_INDEX)),
                    next=decode_index(response.headers.get(HEADER_FEED_INDEX_NEXT)),
                )
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                raise TransportError("feeds", f"failed to decode response: {e}") from e
