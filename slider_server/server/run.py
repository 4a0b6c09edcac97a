"""Bind the listening port and run the app under uvicorn."""

from __future__ import annotations

import logging
import socket

import uvicorn
from fastapi import FastAPI

from ..types import PortInUseError

logger = logging.getLogger(__name__)


class _SuppressReadinessAccess(logging.Filter):
    """Hide the load balancer's repetitive ``GET /`` probes from access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        args = record.args
        if isinstance(args, tuple) and len(args) >= 5:
            method, path, status = args[1], args[2], args[4]
            if method == "GET" and path == "/" and status in (200, 503):
                return False
        return True


def check_port_available(host: str, port: int) -> None:
    """Fail fast before any notebook is opened.

    Raises:
        PortInUseError: If ``host:port`` cannot be bound.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            raise PortInUseError(
                f"Port {port} on {host} is already in use or cannot be bound: {e}"
            ) from e


def serve_app(app: FastAPI, host: str, port: int) -> None:
    """Run ``app`` until interrupted."""
    logging.getLogger("uvicorn.access").addFilter(_SuppressReadinessAccess())
    logger.info("Starting server on %s:%d", host, port)
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        timeout_graceful_shutdown=2,
    )
    server = uvicorn.Server(config)
    server.run()
