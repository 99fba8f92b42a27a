"""Per-tenant request admission control backed by a shared Redis store."""
