"""
Core package for SelfTracker.

This package includes:

- :mod:`SelfTracker.core.state` – The application state container and :func:`~SelfTracker.core.state.apply_change`.
- :mod:`SelfTracker.core.storage` – Namespaced local key-value store backed by SQLite.
- :mod:`SelfTracker.core.client` – HTTP client for the remote store with bounded retries.
- :mod:`SelfTracker.core.merge` – Merge policies reconciling local and remote collections.
- :mod:`SelfTracker.core.migration` – One-time upgrade of legacy string categories.
- :mod:`SelfTracker.core.controller` – Load, mutate, persist and sync orchestration.
- :mod:`SelfTracker.core.signals` – Application-wide Qt signals.
"""
