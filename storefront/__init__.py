"""Cart reconciliation and stock coordination for the Auric storefront."""

__version__ = "1.0.0"
