"""Custom exceptions for kingscout."""
from __future__ import annotations


class KingscoutError(Exception):
    """Base application error."""


class ConfigInvalid(KingscoutError):
    """Configuration could not be parsed or is incomplete."""


class ImageDecodeFailed(KingscoutError):
    """Screenshot or reference bytes could not be decoded into an image."""


class ViewportError(KingscoutError):
    """Base exception for remote viewport I/O failures."""


class ViewportLaunchFailed(ViewportError):
    """The remote browser could not be launched."""


class LoginFailed(ViewportError):
    """Login into the game session failed."""


class NavigationFailed(ViewportError):
    """Navigating the world view to a coordinate failed."""


class ScreenshotFailed(ViewportError):
    """Capturing the viewport failed."""


class PopupElementNotFound(ViewportError):
    """A popup element expected after a click was not present."""


class PhaseConflict(KingscoutError):
    """A control operation is not allowed in the current scanner phase."""

    def __init__(self, operation: str, phase) -> None:
        self.operation = operation
        self.phase = phase
        super().__init__(f"cannot {operation} while {getattr(phase, 'value', phase)}")
