"""HTTP layer for the metadata gateway."""
