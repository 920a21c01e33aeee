"""Rockcast - download, mirror and resume .NET Rocks! episodes."""

__version__ = "0.1.0"
