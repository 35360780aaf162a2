"""Proxy HTTP requests through a running Chromium browser's remote debugger."""

__version__ = "0.1.0"
