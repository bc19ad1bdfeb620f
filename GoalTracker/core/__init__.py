"""
Core package for GoalTracker providing essential functionality.

This package includes:

- :mod:`GoalTracker.core.models` – Goal, book, training and repository entities with their derived values.
- :mod:`GoalTracker.core.database` – Local SQLite persistence with cascading ownership and goal type rules.
- :mod:`GoalTracker.core.credentials` – Keychain-backed storage for tokens and API keys.
"""
