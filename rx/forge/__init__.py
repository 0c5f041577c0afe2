"""Forge access: HTTP client and release models.

The resolver lives in rx.forge.resolver and is not re-exported here.
"""

from .http import HttpClient, HttpError, MockHttpClient, RealHttpClient
from .models import Asset, ReleaseDescriptor, RepositorySpec

__all__ = [
    "HttpClient",
    "HttpError",
    "MockHttpClient",
    "RealHttpClient",
    "Asset",
    "ReleaseDescriptor",
    "RepositorySpec",
]
