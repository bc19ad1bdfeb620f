"""
GitHub integration for programming goals.

This package includes:

- :mod:`GoalTracker.github.auth` – OAuth sign-in, session restore and sign-out.
- :mod:`GoalTracker.github.callback` – Loopback receiver for the OAuth redirect.
- :mod:`GoalTracker.github.sync` – Repository metadata and commit statistics sync.
"""
