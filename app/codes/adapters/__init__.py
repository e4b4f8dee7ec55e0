"""Storage adapters for reference data."""
