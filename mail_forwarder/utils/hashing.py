"""Hashing utilities for deterministic identifiers."""

import hashlib

from mail_forwarder.domain.models import SearchRequest


def hash_string(text: str) -> str:
    """Compute the SHA256 hex digest of a UTF-8 string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_request_key(request: SearchRequest) -> str:
    """Compute a stable key for a search request.

    The key is a SHA256 hash of ``scope:start:end`` with the scope lower-cased,
    so the same mailbox and window always produce the same key.

    Example:
        >>> req = SearchRequest(source_scope="a@x.com",
        ...                     date_range_start="2024-06-01", date_range_end="2024-06-30")
        >>> len(compute_request_key(req))
        64
    """
    composite_key = ":".join(
        [
            request.source_scope.strip().lower(),
            request.date_range_start.isoformat(),
            request.date_range_end.isoformat(),
        ]
    )
    return hash_string(composite_key)
