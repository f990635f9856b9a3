"""Journal mirror reconciliation: markers, detection, insertion, and the reconciler."""
