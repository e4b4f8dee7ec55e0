"""Code canonicalization, validation and lookup."""
