"""
REST API for the withdrawal pipeline.

Exposes fee quotes, withdrawal preparation and explicit submission over FastAPI.
"""

from privacy_pool.api.models import (
    ExecuteResponse,
    PrepareResponse,
    QuoteRequest,
    QuoteResponse,
)

__all__ = [
    "ExecuteResponse",
    "PrepareResponse",
    "QuoteRequest",
    "QuoteResponse",
]
