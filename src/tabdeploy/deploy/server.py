"""
Local HTTP API for a deployable model.

Endpoints:
    POST /predict    JSON records, columns or a single record -> JSON records
    GET  /ping       liveness check
    GET  /metadata   model name, description, packages and version
    GET  /prototype  expected input columns and dtypes
"""

import json
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import urlparse

import pandas as pd

from tabdeploy.deploy.errors import PrototypeError
from tabdeploy.deploy.vetting import DeployableModel
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)


class BadRequestError(ValueError):
    """Request body cannot be turned into a frame."""


def parse_payload(payload: Any) -> pd.DataFrame:
    """
    Build a frame from a decoded JSON body.

    Accepts a list of records, an object of equal-length columns, or a
    single record object.

    Raises:
        BadRequestError: If the payload has another shape.
    """
    if isinstance(payload, list):
        if not all(isinstance(r, dict) for r in payload):
            msg = "Expected a list of objects"
            raise BadRequestError(msg)
        return pd.DataFrame.from_records(payload)
    if isinstance(payload, dict):
        if payload and all(isinstance(v, list) for v in payload.values()):
            lengths = {len(v) for v in payload.values()}
            if len(lengths) != 1:
                msg = "All columns must have the same length"
                raise BadRequestError(msg)
            return pd.DataFrame(payload)
        return pd.DataFrame([payload])
    msg = "Expected a JSON array of records or an object"
    raise BadRequestError(msg)


class PredictionHandler(BaseHTTPRequestHandler):
    """HTTP request handler serving one model."""

    # Set per server by create_server
    model: DeployableModel | None = None

    def do_GET(self) -> None:
        """Handle GET requests."""
        path = urlparse(self.path).path.rstrip("/")

        if path == "/ping":
            self._send_json(
                200,
                {"status": "online", "time": datetime.now(timezone.utc).isoformat()},
            )

        elif path == "/metadata":
            self._send_json(200, self._metadata())

        elif path == "/prototype":
            self._send_json(200, self.model.prototype_spec())

        else:
            self._send_json(404, {"error": f"Not found: {self.path}"})

    def do_POST(self) -> None:
        """Handle POST requests."""
        path = urlparse(self.path).path.rstrip("/")
        if path == "/predict":
            self._predict()
        else:
            self._send_json(404, {"error": f"Not found: {self.path}"})

    def _metadata(self) -> dict[str, Any]:
        return {
            "name": self.model.name,
            "description": self.model.description,
            "mode": self.model.mode,
            "version": self.model.version,
            "required_pkgs": self.model.metadata.get("required_pkgs", []),
            "user": self.model.metadata.get("user", {}),
        }

    def _predict(self) -> None:
        """Predict for the posted rows."""
        content_length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(content_length)

        try:
            new_data = parse_payload(json.loads(body))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._send_json(400, {"error": f"Malformed JSON: {e}"})
            return
        except BadRequestError as e:
            self._send_json(400, {"error": str(e)})
            return

        try:
            preds = self.model.predict(new_data)
        except PrototypeError as e:
            log.warning("Rejected request", error=str(e))
            self._send_json(422, {"error": str(e), "missing": e.missing})
            return
        except Exception as e:
            log.error("Prediction failed", error=str(e))
            self._send_json(500, {"error": f"Prediction failed: {e}"})
            return

        self._send_raw(200, preds.to_json(orient="records").encode())
        log.info("Served predictions", n_rows=len(preds))

    def _send_json(self, status: int, payload: Any) -> None:
        self._send_raw(status, json.dumps(payload, default=str).encode())

    def _send_raw(self, status: int, body: bytes) -> None:
        try:
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        except (ConnectionAbortedError, ConnectionResetError, BrokenPipeError):
            log.debug("Client disconnected before response", status=status)

    def log_message(self, format: str, *args: Any) -> None:
        """Override to use our logger."""
        _ = format, args
        log.debug("HTTP request", method=self.command, path=self.path)


def create_server(
    model: DeployableModel,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> HTTPServer:
    """
    Create (but do not start) an HTTP server for a model.

    Each server gets its own handler class bound to ``model``.

    Args:
        model: Model to serve.
        host: Interface to bind.
        port: Port to bind (0 picks a free port).

    Returns:
        Bound HTTPServer; ``server.server_address`` holds the actual port.
    """
    handler = type(
        "BoundPredictionHandler",
        (PredictionHandler,),
        {"model": model},
    )
    return HTTPServer((host, port), handler)


def run_api(model: DeployableModel, host: str = "127.0.0.1", port: int = 8000) -> None:
    """
    Serve a model until interrupted.

    Args:
        model: Model to serve.
        host: Interface to bind.
        port: HTTP port.
    """
    server = create_server(model, host, port)
    bound_host, bound_port = server.server_address[:2]
    url = f"http://{bound_host}:{bound_port}"

    log.info(
        "Starting model API",
        url=url,
        model=model.name,
        version=model.version,
    )

    print(f"\nModel API: {url}/predict")
    print(f"Model: {model.name} ({model.version or 'unversioned'})")
    print("\nPress Ctrl+C to stop\n")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("Shutting down model API")
    finally:
        server.server_close()
