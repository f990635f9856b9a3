"""
My Day - a day-scoped task roster mirrored into a per-day journal.

Subpackages:
- infra: settings, logging, exceptions
- runtime: time ranges, day keys, roster state and store, lane layout, service
- host: block-tree collaborator contract and an in-memory fake
- reconcile: journal mirror reconciliation
- cli: operator CLI
"""

__version__ = "0.1.0"
