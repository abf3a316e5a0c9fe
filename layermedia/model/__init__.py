"""Data models shared across pipelines."""
