"""
GoalTracker data package: weekly analytics over goals, built with pandas.

This package provides:

- :mod:`GoalTracker.data.data` – Commit trends, training summaries, mileage and pace.
"""
