"""Built-in handler components."""
