"""Provider adapters (one module per backend)."""
