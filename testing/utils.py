"""Networking helpers for tests."""
from __future__ import annotations

import socket


def open_port() -> int:
    """Find a free TCP port on this host for a test server to bind to."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('', 0))
        s.listen(1)
        return s.getsockname()[1]
