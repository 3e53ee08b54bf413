"""Multi-tenant rate limiting core: rules, limiters, degrade modes and in-memory backends."""

__version__ = "0.1.0"