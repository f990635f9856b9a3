"""Operator CLI for the My Day roster."""
