"""Shared identifiers and enums used across runtime, host, reconcile, and CLI layers."""
