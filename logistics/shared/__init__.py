"""Data models and the built-in network shared by the engine and its callers."""
