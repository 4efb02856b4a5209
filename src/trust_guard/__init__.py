"""Advisory trust scoring for inbound requests."""

__version__ = "0.1.0"
