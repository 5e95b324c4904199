"""Core subpackage.

- config: ConfigManager and typed ScannerSettings
- errors: exception hierarchy
- logging_setup: session-based logging
- exchanges / audit: exchange store and audit log
- state / worker: shared scan state and the detection worker pool
"""
from .errors import (
    KingscoutError,
    ConfigInvalid,
    ImageDecodeFailed,
    ViewportError,
    PhaseConflict,
)
from .exchanges import Exchange, ExchangeStore
from .state import ScannerPhase, ScanState

__all__ = [
    "KingscoutError",
    "ConfigInvalid",
    "ImageDecodeFailed",
    "ViewportError",
    "PhaseConflict",
    "Exchange",
    "ExchangeStore",
    "ScannerPhase",
    "ScanState",
]
