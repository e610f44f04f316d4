"""Infrastructure layer: configuration, persistence and external HTTP clients."""
