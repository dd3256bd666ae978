"""Relay metadata service: in-band Vorbis comments served as JSON and an event stream."""

__version__ = "1.0.0"
