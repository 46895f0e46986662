"""API client layer for PRISM.

Async HTTP clients for the pipeline's external collaborators:
- Gemini: generative backend (classification, answers, chart specs)
- Document gateway: read-only aggregation queries over the platform data
"""

from prism.clients.base import BaseAsyncClient, RateLimiter, APIProviderError
from prism.clients.gemini import GeminiClient
from prism.clients.document_store import DocumentStoreClient

__all__ = [
    "BaseAsyncClient",
    "RateLimiter",
    "APIProviderError",
    "GeminiClient",
    "DocumentStoreClient",
]
