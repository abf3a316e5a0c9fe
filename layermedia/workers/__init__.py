"""Qt workers bridging orchestrator commands to the UI thread."""
