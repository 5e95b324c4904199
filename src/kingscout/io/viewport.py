"""Remote viewport collaborator interface.

The scanner drives a remotely controlled browser through this narrow
capability surface. Concrete implementations live outside this package;
they raise ViewportError subclasses from kingscout.core.errors on failure.
"""
from __future__ import annotations

import re
from typing import Optional, Protocol, Tuple, runtime_checkable

_COORD_PATTERNS = {
    "k": re.compile(r"K:(\d+)"),
    "x": re.compile(r"X:(\d+)"),
    "y": re.compile(r"Y:(\d+)"),
}


@runtime_checkable
class RemoteViewport(Protocol):
    def launch(self, settings) -> None: ...
    def login(self, email: str, password: str) -> None: ...
    def navigate_to(self, kingdom: int, x: int, y: int) -> None: ...
    def take_screenshot(self) -> bytes: ...
    def click_at(self, x: float, y: float) -> None: ...
    def read_popup_text(self) -> Optional[str]: ...
    def dismiss_popup(self) -> None: ...
    def close(self) -> None: ...


def parse_popup_coords(text: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """Extract (kingdom, x, y) from popup text like "(K:111 X:506 Y:638)"."""
    if not text:
        return None
    values = []
    for key in ("k", "x", "y"):
        m = _COORD_PATTERNS[key].search(text)
        if m is None:
            return None
        values.append(int(m.group(1)))
    return values[0], values[1], values[2]
