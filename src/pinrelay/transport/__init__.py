"""Transport layer: TCP streams, send retry policy and the relay connection."""
