"""
livedoc
───────
Live-reload documentation server: watch a source tree, rebuild the docs when
changes settle, serve the output and reload open browser tabs.
"""

__version__ = "0.3.0"
