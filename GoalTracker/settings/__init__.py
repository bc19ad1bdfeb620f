"""
Settings package: configuration API and locale utilities.

This package provides:

- :mod:`GoalTracker.settings.lib` – Core settings management and schema validation.
- :mod:`GoalTracker.settings.locale` – Calendar helpers and locale-aware date and number formatting.
"""
