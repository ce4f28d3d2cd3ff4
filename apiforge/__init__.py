"""apiforge: OpenAPI-driven scaffolding and legacy migration for Python services."""

__version__ = "0.4.0"
