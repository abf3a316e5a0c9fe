"""Offscreen render surface and sequential frame capture."""
