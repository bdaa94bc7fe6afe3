"""Page, meta, freelist and node structures for Bolt-format database files, with inspection and repair tools."""

__version__ = "0.1.0"