"""Domain layer: compiled descriptors and framework-free services."""
