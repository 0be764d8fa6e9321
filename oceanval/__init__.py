"""
Ocean forecast verification engine.

Matches profiling-float observations with ocean model forecasts and
reports RMSE, bias and correlation by lead time, by depth and across
models.
"""

__version__ = "0.1.0"
