"""Domain layer: catalog rules, value objects and ports."""
