"""rustlink: a companion-protocol bridge for game server notifications."""

__version__ = "0.1.0"
