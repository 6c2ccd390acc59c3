"""docflow — execution lifecycle coordinator for AI-generated documents."""

__version__ = "0.1.0"
