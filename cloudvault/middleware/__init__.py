"""ASGI middleware."""

from cloudvault.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
