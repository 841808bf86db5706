"""Microsoft Graph implementation of the compliance client."""

from __future__ import annotations

from typing import Dict, List, Optional
from urllib.parse import quote

from mail_forwarder.config.models import ForwardingConfig, GraphConfig
from mail_forwarder.domain.models import JobStatus, JobStatusReport, MailboxRef
from mail_forwarder.domain.query import SearchQuery
from mail_forwarder.logging import get_logger

from .base import HttpComplianceClient
from .exceptions import ComplianceHTTPError, ComplianceResponseError
from .session import GraphSession

logger = get_logger(__name__, component="graph")

# Graph eDiscovery operation statuses
STATUS_MAP: Dict[str, JobStatus] = {
    "notstarted": JobStatus.NOT_STARTED,
    "running": JobStatus.RUNNING,
    "succeeded": JobStatus.COMPLETED,
    "partiallysucceeded": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "submissionfailed": JobStatus.FAILED,
}


class GraphComplianceClient(HttpComplianceClient):
    """Compliance client for Microsoft Graph.

    Searches are eDiscovery case searches whose statistics estimate is the
    asynchronous job; bulk delivery uses the search export operation. The
    per-item path enumerates messages in the source mailbox with the same
    date window and forwards each one through the mail API.

    API Details:
        Searches: POST /security/cases/ediscoveryCases/{case}/searches
        Status:   GET  .../searches/{id}/lastEstimateStatisticsOperation
        Export:   POST .../searches/{id}/exportResult -> operation
        Items:    GET  /users/{mailbox}/messages?$filter=...
        Forward:  POST /users/{mailbox}/messages/{id}/forward
    """

    ADAPTER_NAME = "graph"

    def __init__(
        self,
        session: GraphSession,
        graph_config: GraphConfig,
        forwarding_config: Optional[ForwardingConfig] = None,
    ) -> None:
        super().__init__(session.http, timeout=graph_config.http_request_timeout)
        if not graph_config.ediscovery_case_id:
            raise ValueError("graph.ediscovery_case_id is required for live runs")
        self.graph_config = graph_config
        self.forwarding_config = forwarding_config or ForwardingConfig()
        self.base_url = graph_config.base_url
        self.case_url = (
            f"{self.base_url}/security/cases/ediscoveryCases/{graph_config.ediscovery_case_id}"
        )
        # The search API does not return matched message ids, so the query is
        # kept per search to enumerate messages later.
        self._searches: Dict[str, tuple[str, SearchQuery]] = {}

    def create_job(self, scope: str, query: SearchQuery) -> str:
        created = self._request_json(
            f"{self.case_url}/searches",
            method="POST",
            json_data={
                "displayName": f"mail-forward {scope} {query.start.isoformat()}..{query.end.isoformat()}",
                "description": f"Forward mail received {query.describe()}",
                "contentQuery": query.to_kql(),
            },
        )
        search_id = created.get("id")
        if not search_id:
            raise ComplianceResponseError("Search creation response did not include an id")

        self._make_request(
            f"{self.case_url}/searches/{search_id}/additionalSources",
            method="POST",
            json_data={
                "@odata.type": "microsoft.graph.security.userSource",
                "email": scope,
                "includedSources": "mailbox",
            },
        )
        self._searches[search_id] = (scope, query)

        logger.info(
            "Created compliance search",
            extra={
                "event": "graph.search.created",
                "job_id": search_id,
                "scope": scope,
                "content_query": query.to_kql(),
            },
        )
        return search_id

    def start(self, job_id: str) -> None:
        self._make_request(f"{self.case_url}/searches/{job_id}/estimateStatistics", method="POST")
        logger.info("Started compliance search", extra={"event": "graph.search.started", "job_id": job_id})

    def get_status(self, job_id: str) -> JobStatusReport:
        try:
            data = self._request_json(
                f"{self.case_url}/searches/{job_id}/lastEstimateStatisticsOperation"
            )
        except ComplianceHTTPError as e:
            # No estimate operation has been recorded yet
            if e.status_code == 404:
                return JobStatusReport(status=JobStatus.NOT_STARTED, raw_status="notFound")
            raise
        return self._to_report(data)

    def create_export_action(self, job_id: str, target: MailboxRef) -> str:
        # exportResult builds a download package; Graph has no field routing it to
        # a mailbox, so the target only labels the operation.
        response = self._make_request(
            f"{self.case_url}/searches/{job_id}/exportResult",
            method="POST",
            json_data={
                "displayName": f"mail-forward export for {target}",
                "description": (
                    f"Download package of search results requested for {target.address} "
                    f"folder {target.folder}"
                ),
                "exportCriteria": "searchHits",
                "additionalOptions": "none",
            },
        )
        location = response.headers.get("Location") or response.headers.get("Operation-Location")
        if not location:
            raise ComplianceResponseError("Export response did not include an operation location")
        # Either .../operations/{id} or .../operations('{id}')
        tail = location.rstrip("/").rsplit("/", 1)[-1]
        if tail.startswith("operations(") and tail.endswith(")"):
            tail = tail[len("operations("):-1]
        action_id = tail.strip("'\"")

        logger.info(
            "Created export action",
            extra={
                "event": "graph.export.created",
                "job_id": job_id,
                "action_id": action_id,
                "target": str(target),
            },
        )
        return action_id

    def get_action_status(self, action_id: str) -> JobStatusReport:
        data = self._request_json(f"{self.case_url}/operations/{action_id}")
        return self._to_report(data)

    def list_result_item_ids(self, job_id: str) -> List[str]:
        if job_id not in self._searches:
            raise ComplianceResponseError(f"Unknown search {job_id}; it was not created by this client")
        scope, query = self._searches[job_id]

        item_ids: List[str] = []
        for message in self._paginate(
            f"{self.base_url}/users/{quote(scope)}/messages",
            params={
                "$filter": query.to_odata_filter(),
                "$select": "id",
                "$top": str(self.graph_config.page_size),
            },
        ):
            message_id = message.get("id")
            if not message_id:
                logger.warning(
                    "Skipping message without id",
                    extra={"event": "graph.items.malformed", "job_id": job_id},
                )
                continue
            item_ids.append(message_id)

        logger.info(
            "Enumerated matched items",
            extra={"event": "graph.items.listed", "job_id": job_id, "count": len(item_ids)},
        )
        return item_ids

    def forward_item(self, source_scope: str, item_id: str, target: str, folder: str) -> None:
        self._make_request(
            f"{self.base_url}/users/{quote(source_scope)}/messages/{quote(item_id, safe='')}/forward",
            method="POST",
            json_data={
                "comment": f"{self.forwarding_config.forward_comment} [{folder}]",
                "toRecipients": [{"emailAddress": {"address": target}}],
            },
        )

    def _to_report(self, data: Dict) -> JobStatusReport:
        raw_status = data.get("status")
        if not isinstance(raw_status, str):
            raise ComplianceResponseError("Operation response did not include a status")

        status = STATUS_MAP.get(raw_status.lower())
        if status is None:
            raise ComplianceResponseError(f"Unrecognized operation status: {raw_status}")

        detail = None
        if raw_status.lower() == "partiallysucceeded":
            detail = "Operation partially succeeded"
        elif status == JobStatus.FAILED:
            result_info = data.get("resultInfo")
            if isinstance(result_info, dict):
                detail = result_info.get("message")
            detail = detail or f"Operation reported {raw_status}"

        return JobStatusReport(
            status=status,
            item_count=_as_count(data.get("indexedItemCount")),
            total_size_bytes=_as_count(data.get("indexedItemsSize")),
            raw_status=raw_status,
            detail=detail,
        )


def _as_count(value) -> Optional[int]:
    if value is None:
        return None
    try:
        count = int(value)
    except (TypeError, ValueError):
        return None
    return count if count >= 0 else None
