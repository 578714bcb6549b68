"""rtplot: real-time plotting of integer sample streams with least-squares fits.

Sub-packages:
- :mod:`rtplot.core` parses lines, stores samples and selects windows
- :mod:`rtplot.analysis` holds the regression engine
- :mod:`rtplot.config` maps the YAML configuration onto dataclasses
- :mod:`rtplot.gui` contains the Matplotlib scope and its key handling
- :mod:`rtplot.remote` relays serial devices into the line format
"""

__version__ = "0.1.0"
