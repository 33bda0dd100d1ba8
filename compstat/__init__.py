"""
CompStat analytics backend.

Turns the Dallas police incident dataset into CompStat-style window
comparisons, weekly trends, breakdowns and offense drilldowns, served over
FastAPI.
"""

__version__ = "1.0.0"
