"""Domain logic — no browser or subprocess dependencies."""
