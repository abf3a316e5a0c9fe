"""Sequential fan-out of encode jobs."""
