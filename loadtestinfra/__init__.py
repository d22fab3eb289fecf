"""Load test resource model, defaulting, REST client and defaults file generator."""

__version__ = "0.1.0"
__all__ = ["api", "defaults", "clientset", "configure"]