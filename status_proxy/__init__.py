"""Status passthrough service: per-channel view of an Icecast status document."""

__version__ = "1.0.0"
