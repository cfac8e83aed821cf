"""
SelfTracker data package.

This package provides:

- :mod:`SelfTracker.data.data` – Filters, totals, category usage and checklist progress (pandas based).
- :mod:`SelfTracker.data.samples` – Starter records for empty collections.
"""
