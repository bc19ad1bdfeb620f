"""
Logging subsystem for GoalTracker.

Modules:

- :mod:`GoalTracker.log.log` – Root logger setup, the :class:`SecretFilter` that masks
  GitHub tokens in every record, and the bridge routing Qt messages into Python logging.
"""
