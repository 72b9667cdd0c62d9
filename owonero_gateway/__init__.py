"""Owonero daemon gateway: HTTP/JSON in, line-oriented TCP out."""

__version__ = "0.1.0"
