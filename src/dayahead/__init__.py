"""dayahead — day-ahead electricity prices: normalize, cache, publish, serve."""

__version__ = "0.1.0"
