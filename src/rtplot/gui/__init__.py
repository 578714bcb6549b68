"""Matplotlib live scope and its keyboard-driven state."""
