# bzzdb/devnode.py
"""
Development node serving the Bee HTTP API from a MockClient.

Lets HttpClient, and stores built on it, run end to end without a real
node. Both the main and the debug API are served on one port.

Endpoints:
    GET  /v1/stamps                      - List postage batches
    POST /v1/stamps/:amount/:depth       - Buy a postage batch
    POST /v1/bytes                       - Upload a blob
    GET  /v1/bytes/:ref                  - Download a blob
    GET  /v1/chunks/:ref                 - Download a chunk
    POST /v1/soc/:owner/:id?sig=:sig     - Publish a single owner chunk
    GET  /v1/feeds/:owner/:topic         - Latest feed index
"""

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from .client import MockClient
from .client.http import HEADER_BATCH_ID, HEADER_FEED_INDEX, HEADER_FEED_INDEX_NEXT, HEADER_IMMUTABLE
from .errors import (
    InvalidSignedUpdateError,
    InvalidTicketError,
    NotFoundError,
    TicketCapacityExceededError,
    TicketPurchaseError,
)

logger = logging.getLogger(__name__)


class DevNode:
    """
    HTTP server over an in-memory node.

    Usage:
        node = DevNode(port=0)
        node.start_background()
        client = HttpClient(node.url, api_port=node.port, debug_api_port=node.port)
        ...
        node.shutdown()
    """

    def __init__(self, client: Optional[MockClient] = None, host: str = "127.0.0.1", port: int = 1633):
        self.client = client or MockClient()
        self.host = host
        self._server = ThreadingHTTPServer((host, port), self._create_handler())
        self._server.daemon_threads = True
        self.port = self._server.server_address[1]

    @property
    def url(self) -> str:
        return f"http://{self.host}"

    def _create_handler(server_instance):
        """Create request handler with access to the node."""

        class RequestHandler(BaseHTTPRequestHandler):
            node = server_instance

            def log_message(self, format, *args):
                logger.debug(format % args)

            def _send(self, body: bytes, status: int = 200, content_type: str = "application/json",
                      headers: dict = None):
                self.send_response(status)
                self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(body)))
                for name, value in (headers or {}).items():
                    self.send_header(name, value)
                self.end_headers()
                self.wfile.write(body)

            def _send_json(self, data: Any, status: int = 200, headers: dict = None):
                self._send(json.dumps(data).encode(), status, headers=headers)

            def _send_error(self, message: str, status: int):
                self._send_json({"code": status, "message": message}, status)

            def _body(self) -> bytes:
                length = int(self.headers.get("Content-Length", 0))
                return self.rfile.read(length) if length else b""

            def _dispatch(self, method: str):
                parsed = urlparse(self.path)
                parts = [p for p in parsed.path.split("/") if p]
                if not parts or parts[0] != "v1":
                    self._send_error("Not Found", 404)
                    return
                route = (method, parts[1] if len(parts) > 1 else "", len(parts))
                try:
                    self._route(route, parts[2:], parse_qs(parsed.query))
                except NotFoundError:
                    self._send_error("Not Found", 404)
                except InvalidTicketError:
                    self._send_error("invalid postage batch id", 400)
                except TicketCapacityExceededError:
                    self._send_error("batch is overissued", 402)
                except TicketPurchaseError as e:
                    self._send_error(str(e), 400)
                except InvalidSignedUpdateError:
                    self._send_error("invalid chunk", 401)
                except ValueError as e:
                    self._send_error(f"bad request: {e}", 400)

            def _route(self, route, args, query):
                client = self.node.client

                if route == ("GET", "stamps", 2):
                    stamps = [s.to_dict() for s in client.list_tickets()]
                    self._send_json({"stamps": stamps})

                elif route == ("POST", "stamps", 4):
                    immutable = self.headers.get(HEADER_IMMUTABLE, "false").lower() == "true"
                    batch_id = client.purchase_ticket(int(args[0]), int(args[1]), immutable)
                    self._send_json({"batchID": batch_id}, 201)

                elif route == ("POST", "bytes", 2):
                    batch_id = self.headers.get(HEADER_BATCH_ID, "")
                    reference = client.upload(self._body(), batch_id)
                    self._send_json({"reference": reference.hex()}, 201)

                elif route == ("GET", "bytes", 3):
                    with client.download(bytes.fromhex(args[0])) as stream:
                        self._send(stream.read(), content_type="application/octet-stream")

                elif route == ("GET", "chunks", 3):
                    with client.download_chunk(bytes.fromhex(args[0])) as stream:
                        self._send(stream.read(), content_type="application/octet-stream")

                elif route == ("POST", "soc", 4):
                    signature = bytes.fromhex(query.get("sig", [""])[0])
                    batch_id = self.headers.get(HEADER_BATCH_ID, "")
                    reference = client.upload_soc(
                        bytes.fromhex(args[0]),
                        bytes.fromhex(args[1]),
                        self._body(),
                        signature,
                        batch_id,
                    )
                    self._send_json({"reference": reference.hex()}, 201)

                elif route == ("GET", "feeds", 4):
                    resp = client.feed_index_latest(bytes.fromhex(args[0]), bytes.fromhex(args[1]))
                    if resp.reference is None:
                        raise NotFoundError("feed not found")
                    self._send_json(
                        {"reference": resp.reference.hex()},
                        headers={
                            HEADER_FEED_INDEX: resp.current.to_bytes(8, "big").hex(),
                            HEADER_FEED_INDEX_NEXT: resp.next.to_bytes(8, "big").hex(),
                        },
                    )

                else:
                    raise NotFoundError(self.path)

            def do_GET(self):
                self._dispatch("GET")

            def do_POST(self):
                self._dispatch("POST")

        return RequestHandler

    def start(self):
        """Serve requests (blocking)."""
        logger.info(f"Dev node serving on {self.host}:{self.port}")
        try:
            self._server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutting down dev node")
        finally:
            self._server.server_close()

    def start_background(self) -> threading.Thread:
        """Serve requests from a daemon thread."""
        thread = threading.Thread(target=self.start, daemon=True)
        thread.start()
        return thread

    def shutdown(self):
        self._server.shutdown()
