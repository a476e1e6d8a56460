"""Outbound provider adapters."""
