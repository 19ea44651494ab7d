"""channelproof: verified marketing attribution and channel analytics."""

__version__ = "0.1.0"
