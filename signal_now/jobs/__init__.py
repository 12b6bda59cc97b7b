"""Job entrypoints."""
