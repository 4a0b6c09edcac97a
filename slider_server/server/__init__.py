from .app import create_app
from .run import check_port_available, serve_app

__all__ = [
    "create_app",
    "check_port_available",
    "serve_app",
]
