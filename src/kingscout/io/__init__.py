"""I/O collaborators: the remote viewport interface."""
from .viewport import RemoteViewport, parse_popup_coords

__all__ = ["RemoteViewport", "parse_popup_coords"]
