"""Analysis modules for forecast verification."""
