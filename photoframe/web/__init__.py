"""HTTP front for e-paper devices."""

from .server import FrameHTTPServer, FrameRequestHandler, FrameWebServer

__all__ = ["FrameHTTPServer", "FrameRequestHandler", "FrameWebServer"]
