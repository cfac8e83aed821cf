"""
Logging subsystem.

Modules:

- :mod:`SelfTracker.log.log` – Root logger setup, in-memory tank handler and Qt message bridge.
"""
