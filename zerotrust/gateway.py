"""
Edge gateway app.

Receives client requests, wraps each one exactly once into an envelope
carrying edge-attested metadata, seals it with the shared gateway secret
and forwards it to the backend service. The edge never verifies the
credential or the user signature; it only vouches for what it received.

Routes:
    GET  /health
    POST /login             forwarded to the auth app
    POST /api/{endpoint}    wrapped, sealed, forwarded to /internal/{endpoint}
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse

from .config import ProtocolConfig
from .envelope import build_gateway_metadata, seal, wrap
from .errors import Layer, MalformedRequest
from .logging_config import get_request_id
from .models import ClientRequest, LoginRequest, parse_model
from .secret_provider import SecretProvider
from .validation import sanitize_for_logging
from .web import REQUEST_ID_HEADER, error_body, register_error_handlers

logger = logging.getLogger(__name__)

ENDPOINT_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,64}$')


class UpstreamUnavailable(Exception):
    """The upstream could not be reached or did not answer in time."""


@dataclass
class ForwardResponse:
    status_code: int
    body: Any


class Forwarder(ABC):
    """Transport used by the edge to reach the backend and auth apps."""

    @abstractmethod
    def post(self, url: str, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> ForwardResponse:
        """
        POST a JSON body.

        Raises:
            UpstreamUnavailable: On connection failure or timeout
        """
        pass


class HttpForwarder(Forwarder):
    """requests-based forwarder with a bounded timeout."""

    def __init__(self, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def post(self, url: str, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> ForwardResponse:
        try:
            r = self.session.post(url, json=body, headers=headers or {}, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise UpstreamUnavailable(f"{url}: {e}") from e
        try:
            payload = r.json()
        except ValueError:
            payload = error_body("Bad upstream response")
            return ForwardResponse(status_code=502, body=payload)
        return ForwardResponse(status_code=r.status_code, body=payload)


def create_gateway_app(
    config: ProtocolConfig,
    secret_provider: SecretProvider,
    forwarder: Optional[Forwarder] = None,
) -> FastAPI:
    """Build the edge app."""
    forwarder = forwarder or HttpForwarder(timeout=config.forward_timeout_seconds)
    app = FastAPI(title="zerotrust edge gateway")
    register_error_handlers(app)

    def _forward(url: str, body: Dict[str, Any]) -> JSONResponse:
        try:
            upstream = forwarder.post(url, body, headers={REQUEST_ID_HEADER: get_request_id()})
        except UpstreamUnavailable as e:
            logger.error(f"Upstream unavailable: {e}")
            return JSONResponse(status_code=503, content=error_body("Upstream service unavailable"))
        return JSONResponse(status_code=upstream.status_code, content=upstream.body)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "service": "gateway",
            "gateway_id": config.gateway_id,
        }

    @app.post("/login")
    def login(body: Any = Body(None)):
        req = parse_model(LoginRequest, body, Layer.LOGIN)
        return _forward(f"{config.auth_url}/login", req.model_dump())

    @app.post("/api/{endpoint}")
    def api(endpoint: str, request: Request, body: Any = Body(None)):
        if not ENDPOINT_PATTERN.match(endpoint):
            raise MalformedRequest(f"invalid endpoint {endpoint!r}")
        original = parse_model(ClientRequest, body).model_dump()

        client_ip = request.client.host if request.client else None
        metadata = build_gateway_metadata(endpoint, config.gateway_id, client_ip)
        envelope = wrap(original, metadata)
        sealed = seal(envelope, secret_provider.get(config.gateway_secret_name))

        logger.debug(f"Forwarding /api/{endpoint}: {sanitize_for_logging(sealed)}")
        return _forward(f"{config.service_url}/internal/{endpoint}", sealed)

    return app
