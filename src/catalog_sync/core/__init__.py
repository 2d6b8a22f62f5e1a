"""HTTP transport for the remote catalog service."""

from .client import CatalogClient

__all__ = ["CatalogClient"]
