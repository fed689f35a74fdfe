"""JSON-over-HTTP quotes service: domain types, SQL storage, service layer and Flask routes."""

__version__ = "1.0.0"

__all__ = ["__version__"]