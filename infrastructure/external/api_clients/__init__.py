"""
API client module

HTTP client base shared by the payment rails
"""
from .base import BaseAPIClient, APIResponse, APIError, TransportError

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "TransportError",
]
