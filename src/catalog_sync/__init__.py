"""Two-way reconciliation of local records with an external catalog service."""

__version__ = "0.1.0"
