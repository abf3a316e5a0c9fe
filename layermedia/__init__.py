"""Capture, transcode and distribute generative artworks."""

__version__ = "0.1.0"
