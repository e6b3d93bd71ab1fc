"""Continuous double-auction market engine for the four arcane resources.

The package is free of rendering, persistence and timing concerns: a surrounding
game-flow controller supplies the roster, drives `tick()` and listens to the
event stream.
"""

from arcane_market.session import MarketSession

__all__ = ["MarketSession"]
