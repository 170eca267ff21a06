"""storefront - order lifecycle and checkout pipeline for a small web shop."""

__version__ = "0.1.0"
