"""cloudvault: storage abstraction and quota enforcement for multi-tenant file storage."""

__version__ = "1.0.0"
