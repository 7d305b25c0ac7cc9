"""fetchbay: retrieve URLs, uploads and torrents into configured folders."""

__version__ = "1.0.0"
