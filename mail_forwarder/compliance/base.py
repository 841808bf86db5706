"""Base classes for compliance/mail platform clients.

``ComplianceClient`` is the contract the forwarding run depends on.
``HttpComplianceClient`` adds the shared HTTP request handling used by the
REST implementation: timeouts, status-code mapping, JSON parsing, paging and
request logging.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

import requests

from mail_forwarder.domain.models import JobStatusReport, MailboxRef
from mail_forwarder.domain.query import SearchQuery
from mail_forwarder.logging import get_logger

from .exceptions import (
    AuthenticationFailed,
    ComplianceHTTPError,
    ComplianceResponseError,
    ComplianceTimeoutError,
)

logger = get_logger(__name__, component="compliance")


class ComplianceClient(ABC):
    """Remote search/compliance and mail API used by a forwarding run."""

    @abstractmethod
    def create_job(self, scope: str, query: SearchQuery) -> str:
        """Create a search over ``scope`` matching ``query``; return its id."""

    @abstractmethod
    def start(self, job_id: str) -> None:
        """Start a created search."""

    @abstractmethod
    def get_status(self, job_id: str) -> JobStatusReport:
        """Fetch the current status of a search."""

    @abstractmethod
    def create_export_action(self, job_id: str, target: MailboxRef) -> str:
        """Start an export of the search results to ``target``; return the action id."""

    @abstractmethod
    def get_action_status(self, action_id: str) -> JobStatusReport:
        """Fetch the current status of an export action."""

    @abstractmethod
    def list_result_item_ids(self, job_id: str) -> List[str]:
        """Return the ids of every item matched by a completed search."""

    @abstractmethod
    def forward_item(self, source_scope: str, item_id: str, target: str, folder: str) -> None:
        """Forward one item from ``source_scope`` to ``target``.

        Raises:
            ComplianceError: If the platform rejects or fails the forward
        """


class HttpComplianceClient(ComplianceClient):
    """ComplianceClient backed by a REST API reached through ``requests``.

    Attributes:
        http: Authenticated requests.Session (owned by the caller's session)
        timeout: HTTP request timeout in seconds
    """

    def __init__(self, http: requests.Session, timeout: int = 30) -> None:
        self.http = http
        self.timeout = timeout

    def _make_request(
        self,
        url: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Make an HTTP request and map failures onto compliance exceptions.

        Returns:
            The response for any status below 400

        Raises:
            AuthenticationFailed: On HTTP 401
            ComplianceHTTPError: On other 4xx/5xx statuses or connection errors
            ComplianceTimeoutError: On request timeout
        """
        try:
            logger.debug(
                f"HTTP {method} request to {url}",
                extra={
                    "event": "graph.request",
                    "method": method,
                    "url": url,
                    "timeout": self.timeout,
                },
            )

            response = self.http.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={
                    "event": "graph.request.retryable_error",
                    "error_type": "Timeout",
                    "url": url,
                },
            )
            raise ComplianceTimeoutError(
                f"Request to {url} timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.warning(
                f"Request to {url} failed: {e}",
                extra={
                    "event": "graph.request.retryable_error",
                    "error_type": type(e).__name__,
                    "url": url,
                },
            )
            raise ComplianceHTTPError(f"Request to {url} failed: {e}", status_code=0, url=url) from e

        if response.status_code == 401:
            logger.error(
                "Access token rejected",
                extra={"event": "graph.request.unauthorized", "url": url},
            )
            raise AuthenticationFailed(
                "Access token was rejected or has expired",
                detail=_error_message(response),
            )

        if response.status_code >= 400:
            is_retryable = response.status_code == 429 or response.status_code >= 500
            logger.log(
                logging.WARNING if is_retryable else logging.ERROR,
                f"HTTP {response.status_code} error from {url}",
                extra={
                    "event": "graph.request.retryable_error" if is_retryable else "graph.request.error",
                    "status_code": response.status_code,
                    "url": url,
                    "retry_after_seconds": response.headers.get("Retry-After"),
                },
            )
            raise ComplianceHTTPError(
                f"HTTP {response.status_code}: {_error_message(response) or response.reason}",
                status_code=response.status_code,
                url=url,
            )

        return response

    def _request_json(
        self,
        url: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make a request and parse the JSON object body (empty dict for no content)."""
        response = self._make_request(url, method=method, params=params, json_data=json_data)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            data = response.json()
        except ValueError as e:
            logger.error(
                f"Failed to parse JSON response from {url}",
                extra={"event": "graph.request.error", "error_type": "JSONDecodeError", "url": url},
            )
            raise ComplianceResponseError(f"Failed to parse JSON response from {url}: {e}") from e

        if not isinstance(data, dict):
            raise ComplianceResponseError(
                f"Expected JSON object response from {url}, got {type(data).__name__}"
            )
        return data

    def _paginate(self, url: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """Yield every entry of an OData collection, following ``@odata.nextLink``."""
        next_url: Optional[str] = url
        next_params = params
        while next_url:
            page = self._request_json(next_url, params=next_params)
            values = page.get("value", [])
            if not isinstance(values, list):
                raise ComplianceResponseError(
                    f"Expected 'value' field to be array, got {type(values).__name__}"
                )
            yield from values
            next_url = page.get("@odata.nextLink")
            # nextLink already embeds the query string
            next_params = None


def _error_message(response: requests.Response) -> Optional[str]:
    """Extract the platform's error message from an error response, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("code")
    return body.get("error_description") or (error if isinstance(error, str) else None)
