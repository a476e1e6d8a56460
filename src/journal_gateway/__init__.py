"""Journal gateway — resilient, breaker-guarded access to external AI providers."""

__version__ = "0.1.0"
