"""Bridges from external devices into the rtplot line format."""
