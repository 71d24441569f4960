"""REST transport for the remote tree store.

Provides the HTTP client, query filters, and the wire-level stream event
types consumed by the store layer.
"""

from .api import RestApi
from .filter import Filter
from .models import DbResponse, StreamEvent, StreamEventKind

__all__ = ["RestApi", "Filter", "DbResponse", "StreamEvent", "StreamEventKind"]
