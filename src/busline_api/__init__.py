"""Bus 80 Tracker API: realtime reconciliation service for a single bus line."""
