"""Configuration objects for rtplot.

A single YAML file describes retention, per-channel scaling, the scope grid
and plot colours. The typed dataclasses live in :mod:`runtime`.
"""

from .runtime import RtPlotConfig, config_from_mapping, load_config

__all__ = ["RtPlotConfig", "config_from_mapping", "load_config"]
