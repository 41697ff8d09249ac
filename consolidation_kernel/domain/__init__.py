"""Pure domain types for the consolidation kernel (no I/O)."""
