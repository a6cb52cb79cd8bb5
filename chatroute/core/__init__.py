"""Handler registration and event-routing engine."""
