"""Authenticated platform sessions.

A forwarding run acquires exactly one session, uses it for every remote call,
and releases it when the run ends, whatever the outcome.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, FrozenSet, Optional
from urllib.parse import urlsplit

import jwt
import requests

from mail_forwarder.config.environment import GraphCredentials
from mail_forwarder.config.models import GraphConfig
from mail_forwarder.logging import get_logger
from mail_forwarder.utils.timestamps import utc_now

from .exceptions import AuthenticationFailed

logger = get_logger(__name__, component="session")


class GraphSession:
    """An authenticated connection to Microsoft Graph.

    Attributes:
        http: requests.Session carrying the bearer token and User-Agent
        access_token: Raw OAuth2 access token
        expires_at: When the token stops being accepted (UTC)
        tenant_id: Tenant the token was issued for
    """

    def __init__(
        self,
        http: requests.Session,
        access_token: str,
        expires_at: datetime,
        tenant_id: str,
    ) -> None:
        self.http = http
        self.access_token = access_token
        self.expires_at = expires_at
        self.tenant_id = tenant_id
        self.closed = False

    @property
    def granted_roles(self) -> Optional[FrozenSet[str]]:
        """Application roles from the token's ``roles`` claim.

        Returns None when the token is not a readable JWT or the claim has an
        unexpected shape, in which case the privileges cannot be checked
        locally.
        """
        claims = _decode_jwt_claims(self.access_token)
        if claims is None:
            return None
        roles = claims.get("roles") or []
        # A single role may be issued as a bare string
        if isinstance(roles, str):
            return frozenset({roles})
        if not isinstance(roles, (list, tuple)):
            return None
        return frozenset(str(role) for role in roles)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def close(self) -> None:
        if not self.closed:
            self.http.close()
            self.closed = True


class SessionProvider(ABC):
    """Acquires and releases platform sessions."""

    @abstractmethod
    def connect(self, credentials: GraphCredentials) -> GraphSession:
        """Authenticate and return a session.

        Raises:
            AuthenticationFailed: If the platform refuses the credentials
        """

    @abstractmethod
    def disconnect(self, session: GraphSession) -> None:
        """Release a session. Safe to call on an already closed session."""


class GraphSessionProvider(SessionProvider):
    """Client-credentials sign-in against the Microsoft identity platform."""

    def __init__(
        self,
        graph_config: GraphConfig,
        http_factory: Optional[Callable[[], requests.Session]] = None,
    ) -> None:
        self.graph_config = graph_config
        self.http_factory = http_factory or requests.Session

    @property
    def scope(self) -> str:
        """``<graph origin>/.default`` for the configured Graph base URL."""
        parts = urlsplit(self.graph_config.base_url)
        return f"{parts.scheme}://{parts.netloc}/.default"

    def connect(self, credentials: GraphCredentials) -> GraphSession:
        token_url = (
            f"{self.graph_config.authority_url}/{credentials.tenant_id}/oauth2/v2.0/token"
        )
        http = self.http_factory()
        http.headers.update({"User-Agent": self.graph_config.user_agent})

        logger.info(
            "Requesting access token",
            extra={
                "event": "session.connecting",
                "tenant_id": credentials.tenant_id,
                "client_id": credentials.client_id,
            },
        )

        try:
            response = http.post(
                token_url,
                data={
                    "client_id": credentials.client_id,
                    "client_secret": credentials.client_secret,
                    "scope": self.scope,
                    "grant_type": "client_credentials",
                },
                timeout=self.graph_config.http_request_timeout,
            )
        except requests.exceptions.RequestException as e:
            http.close()
            raise AuthenticationFailed(
                f"Could not reach the identity platform: {e}", detail=type(e).__name__
            ) from e

        try:
            token_data = response.json()
        except ValueError:
            token_data = {}

        access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
        if response.status_code != 200 or not access_token:
            http.close()
            detail = token_data.get("error_description") if isinstance(token_data, dict) else None
            logger.error(
                "Access token request rejected",
                extra={
                    "event": "session.connect.failed",
                    "status_code": response.status_code,
                    "error": token_data.get("error") if isinstance(token_data, dict) else None,
                },
            )
            raise AuthenticationFailed(
                f"Token request failed with HTTP {response.status_code}", detail=detail
            )

        expires_in = int(token_data.get("expires_in", 3600))
        http.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            }
        )
        session = GraphSession(
            http=http,
            access_token=access_token,
            expires_at=utc_now() + timedelta(seconds=expires_in),
            tenant_id=credentials.tenant_id,
        )

        logger.info(
            "Connected to Microsoft Graph",
            extra={
                "event": "session.connected",
                "expires_in_seconds": expires_in,
            },
        )
        return session

    def disconnect(self, session: GraphSession) -> None:
        session.close()
        logger.info("Disconnected from Microsoft Graph", extra={"event": "session.disconnected"})


def _decode_jwt_claims(token: str) -> Optional[dict]:
    """Read the claims of a JWT without verifying its signature.

    Only the local privilege preflight reads these claims.
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
