"""Room-based signaling relay for establishing WebRTC peer connections."""
from __future__ import annotations

import importlib.metadata as importlib_metadata

__version__ = importlib_metadata.version('roomrelay')
