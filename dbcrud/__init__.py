"""Schema-agnostic CRUD over relational databases."""

__version__ = "0.1.0"
