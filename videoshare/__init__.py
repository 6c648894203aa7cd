"""Asynchronous transcode job service for VideoShare."""

__version__ = "0.1.0"
