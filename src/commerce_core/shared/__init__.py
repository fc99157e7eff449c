"""Shared errors, logging, metrics and helpers for the commerce core."""
