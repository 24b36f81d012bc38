"""Base exception shared by sockonsole errors."""

from __future__ import annotations


class SockonsoleError(Exception):
    """Root of every error raised deliberately by sockonsole."""


__all__ = ["SockonsoleError"]
