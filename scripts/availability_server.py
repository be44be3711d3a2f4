#!/usr/bin/env python3
"""Availability endpoint for the booking site.

Runs on localhost:9000 behind Nginx. Read routes answer from a fresh
snapshot per request; POST /bookings re-validates under a slot lock before
writing.

  GET  /health
  GET  /availability?technique=&participants=&date=&time=&startDate=&daysAhead=
  GET  /group-availability?pottersWheel=&handModeling=&painting=&date=&time=
  POST /bookings   (JSON booking body)

Errors: 400 bad parameters, 409 slot no longer bookable, 500 anything else.
"""

import json
import os
import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qsl, urlsplit

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.availability.config import get_config  # noqa: E402
from src.availability.errors import (  # noqa: E402
    InvalidRequestError,
    SlotUnavailableError,
)
from src.availability.logging import bind_request, get_logger, setup_logging  # noqa: E402
from src.availability.service import AvailabilityService  # noqa: E402
from src.availability.store import get_store  # noqa: E402

log = get_logger(__name__)


def route_request(
    service: AvailabilityService, method: str, path: str, body: bytes = b""
) -> tuple[int, dict]:
    """Dispatch one request; returns (status code, JSON payload)."""
    parts = urlsplit(path)
    query = dict(parse_qsl(parts.query))
    request_id = bind_request(f"{method} {parts.path}")

    try:
        if method == "GET" and parts.path == "/health":
            return 200, {"status": "ok"}
        if method == "GET" and parts.path == "/availability":
            return 200, service.availability(query)
        if method == "GET" and parts.path == "/group-availability":
            return 200, service.group_availability(query)
        if method == "POST" and parts.path == "/bookings":
            try:
                payload = json.loads(body or b"{}")
            except ValueError as e:
                raise InvalidRequestError("Body must be valid JSON") from e
            return 201, service.create_booking(payload)
        return 404, {"success": False, "error": "Not found"}
    except InvalidRequestError as e:
        log.info("request_invalid", error=str(e))
        return 400, {"success": False, "error": str(e)}
    except SlotUnavailableError as e:
        return 409, {
            "success": False,
            "error": str(e),
            "slot": e.decision.model_dump(mode="json", by_alias=True),
        }
    except Exception:
        log.exception("request_failed")
        return 500, {"success": False, "error": "Internal error", "requestId": request_id}


def make_handler(service: AvailabilityService) -> type[BaseHTTPRequestHandler]:
    class AvailabilityHandler(BaseHTTPRequestHandler):
        def _respond(self, code: int, payload: dict) -> None:
            data = json.dumps(payload, ensure_ascii=False).encode()
            self.send_response(code)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def do_GET(self):
            self._respond(*route_request(service, "GET", self.path))

        def do_POST(self):
            content_length = int(self.headers.get("Content-Length", 0))
            body = self.rfile.read(content_length)
            self._respond(*route_request(service, "POST", self.path, body))

        def log_message(self, format, *args):
            log.debug("http_access", client=self.client_address[0], line=format % args)

    return AvailabilityHandler


if __name__ == "__main__":
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)
    service = AvailabilityService(get_store(config), config)
    server = ThreadingHTTPServer(
        (config.server_host, config.server_port), make_handler(service)
    )
    log.info("server_listening", host=config.server_host, port=config.server_port)
    server.serve_forever()
