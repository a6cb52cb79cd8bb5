"""Chat transports and ingestion helpers."""
