"""kingscout: locate a target building across game kingdoms by template matching."""

__version__ = "0.1.0"
