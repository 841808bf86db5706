"""Clients for the cloud compliance search and mail APIs.

Use the session provider to authenticate, then build the Graph client on the
session:
    provider = GraphSessionProvider(app_config.graph)
    session = provider.connect(env_config.credentials)
    client = GraphComplianceClient(session, app_config.graph, app_config.forwarding)

Exception handling:
    from mail_forwarder.compliance.exceptions import ComplianceError, AuthenticationFailed
"""

from .base import ComplianceClient, HttpComplianceClient
from .exceptions import (
    AuthenticationFailed,
    ComplianceError,
    ComplianceHTTPError,
    ComplianceResponseError,
    ComplianceTimeoutError,
    is_transient,
)
from .graph import GraphComplianceClient
from .session import GraphSession, GraphSessionProvider, SessionProvider

__all__ = [
    # Contracts
    "ComplianceClient",
    "HttpComplianceClient",
    "SessionProvider",
    # Graph implementation
    "GraphComplianceClient",
    "GraphSession",
    "GraphSessionProvider",
    # Exceptions
    "ComplianceError",
    "ComplianceHTTPError",
    "ComplianceTimeoutError",
    "ComplianceResponseError",
    "AuthenticationFailed",
    "is_transient",
]
