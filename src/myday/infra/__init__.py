"""
Infrastructure layer - settings, logging, and error types.

This layer contains technical concerns shared by the runtime and reconcile
layers: configuration loading, structured logging, and the exception hierarchy.
"""
