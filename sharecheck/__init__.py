"""Sharecheck: batch liveness checker for cloud-drive share links."""

__version__ = "0.1.0"
