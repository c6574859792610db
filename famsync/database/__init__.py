"""Local persistence for famsync."""
