"""Shared infrastructure — provider resilience, observability, error mapping."""
