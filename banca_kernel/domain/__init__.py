"""Pure domain types for the banking kernel (no I/O)."""
