"""
UI support package for GoalTracker.

- :mod:`GoalTracker.ui.actions` – Application-wide signal bus shared by the views and services.
- :mod:`GoalTracker.ui.app` – The custom QApplication.
- :mod:`GoalTracker.ui.palette` – Colour helpers for goal types, languages, and workouts.
"""
