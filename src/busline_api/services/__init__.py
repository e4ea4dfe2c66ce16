"""Service layer: upstream clients, reconciliation, polling and live updates."""
