"""HTTP and websocket surface over the orchestrator."""
