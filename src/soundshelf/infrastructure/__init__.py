"""Infrastructure layer: persistence, external tools, observability."""
