"""Numerical analysis of stored windows.

:mod:`regression` works on plain NumPy arrays and has no knowledge of the
store or the GUI, so it can be used from scripts and tests directly.
"""
