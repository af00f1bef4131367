"""
utils/ - Shared helpers (logging, error types).
"""
