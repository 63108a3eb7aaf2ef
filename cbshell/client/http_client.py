"""
HTTP client for the REST services of one cluster.
"""

import json
import time
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from ..models.cluster import ConnectionRecord
from ..exceptions import OperationFailedError, OperationTimeoutError
from ..execution.cancellation import CancellationToken
from ..utils.logging import get_logger
from .requests import ManagementRequest, quote_segment

logger = get_logger(__name__)

DEFAULT_SCOPE = "_default"
DEFAULT_COLLECTION = "_default"


class Service(str, Enum):
    """Cluster services reachable over HTTP, with their plain and TLS ports."""
    MANAGEMENT = "management"
    QUERY = "query"
    ANALYTICS = "analytics"
    SEARCH = "search"

    @property
    def ports(self):
        return {
            Service.MANAGEMENT: (8091, 18091),
            Service.QUERY: (8093, 18093),
            Service.ANALYTICS: (8095, 18095),
            Service.SEARCH: (8094, 18094),
        }[self]


class ClusterClient:
    """Talks to one cluster, described by a record snapshot.

    Every call takes the deadline and cancellation token of the fan-out it
    runs in: the token is checked before each request and the request
    timeout is whatever is left until the deadline.
    """

    def __init__(self, record: ConnectionRecord,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the client.

        Args:
            record: Snapshot of the cluster's connection record
            transport: Optional httpx transport, used by tests
        """
        self.record = record
        self.transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client, creating it if necessary."""
        if self._http_client is None:
            verify: Any = True
            if self.record.tls.accept_all_certs:
                verify = False
            elif self.record.tls.cert_path:
                verify = self.record.tls.cert_path
            self._http_client = httpx.AsyncClient(
                auth=(self.record.username, self.record.password),
                verify=verify,
                transport=self.transport,
                headers={"User-Agent": "cbshell/1.0"}
            )
        return self._http_client

    async def __aenter__(self) -> "ClusterClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def base_url(self, service: Service) -> str:
        plain, secure = service.ports
        host = self.record.hostnames[0]
        if self.record.uses_tls:
            return f"https://{host}:{secure}"
        return f"http://{host}:{plain}"

    async def request(self, service: Service, method: str, path: str,
                      deadline: float, token: CancellationToken, **kwargs) -> httpx.Response:
        """Send one request before the deadline passes.

        Raises:
            OperationCancelledError: If the token has fired
            OperationTimeoutError: If the deadline passed or the request timed out
            OperationFailedError: On transport errors and non-2xx responses
        """
        cluster = self.record.identifier
        token.raise_if_cancelled(cluster)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise OperationTimeoutError(0, cluster)

        url = f"{self.base_url(service)}{path}"
        logger.debug(f"{method} {url} on '{cluster}' (timeout {remaining:.2f}s)")
        try:
            response = await self.http_client.request(method, url, timeout=remaining, **kwargs)
        except httpx.TimeoutException as e:
            raise OperationTimeoutError(remaining, cluster, cause=e)
        except httpx.HTTPError as e:
            raise OperationFailedError(f"Request to {service.value} service failed: {e}", cluster, cause=e)

        if response.status_code >= 400:
            raise OperationFailedError(
                f"HTTP {response.status_code} - {_error_detail(response)}",
                cluster,
                status_code=response.status_code
            )
        return response

    async def management_request(self, request: ManagementRequest,
                                 deadline: float, token: CancellationToken) -> Any:
        """Run a management request; returns the decoded JSON body, or text."""
        logger.debug(f"Running management request '{request.description}' on '{self.record.identifier}'")
        response = await self.request(
            Service.MANAGEMENT, request.method, request.path, deadline, token,
            data=request.form or None
        )
        return _body(response)

    async def query(self, statement: str, deadline: float, token: CancellationToken,
                    parameters: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Run a query statement and return its result rows."""
        return await self._statement(Service.QUERY, "/query/service", statement, deadline, token, parameters)

    async def analytics(self, statement: str, deadline: float, token: CancellationToken,
                        parameters: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Run an analytics statement and return its result rows."""
        return await self._statement(Service.ANALYTICS, "/analytics/service", statement, deadline, token, parameters)

    async def search(self, index: str, query: str, deadline: float, token: CancellationToken,
                     limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Run a query string search against an index and return its hits."""
        payload: Dict[str, Any] = {"query": {"query": query}}
        if limit is not None:
            payload["size"] = limit
        response = await self.request(
            Service.SEARCH, "POST", f"/api/index/{quote_segment(index)}/query", deadline, token, json=payload
        )
        body = _body(response)
        if not isinstance(body, dict):
            raise OperationFailedError("Unexpected search response", self.record.identifier)
        return [
            {"id": hit.get("id"), "score": hit.get("score"), "index": hit.get("index")}
            for hit in body.get("hits") or []
        ]

    async def get_document(self, bucket: str, key: str, deadline: float, token: CancellationToken,
                           scope: Optional[str] = None, collection: Optional[str] = None) -> Dict[str, Any]:
        """Fetch a document; returns ``{"id", "content", "cas"}``."""
        response = await self.request(
            Service.MANAGEMENT, "GET", self._document_path(bucket, scope, collection, key), deadline, token
        )
        body = _body(response)
        content = body.get("json") if isinstance(body, dict) else body
        if isinstance(content, str):
            try:
                content = json.loads(content)
            except json.JSONDecodeError:
                pass
        meta = body.get("meta", {}) if isinstance(body, dict) else {}
        return {"id": key, "content": content, "cas": meta.get("cas")}

    async def upsert_document(self, bucket: str, key: str, content: Any, deadline: float,
                              token: CancellationToken, scope: Optional[str] = None,
                              collection: Optional[str] = None, expiry: Optional[int] = None) -> None:
        """Create or replace a document."""
        form = {"value": json.dumps(content)}
        if expiry:
            form["expiry"] = str(expiry)
        await self.request(
            Service.MANAGEMENT, "POST", self._document_path(bucket, scope, collection, key),
            deadline, token, data=form
        )

    async def remove_document(self, bucket: str, key: str, deadline: float, token: CancellationToken,
                              scope: Optional[str] = None, collection: Optional[str] = None) -> None:
        """Remove a document."""
        await self.request(
            Service.MANAGEMENT, "DELETE", self._document_path(bucket, scope, collection, key), deadline, token
        )

    async def close(self) -> None:
        """Close the HTTP client connection."""
        if self._http_client:
            try:
                await self._http_client.aclose()
            except Exception as e:
                logger.warning(f"Error closing HTTP client: {e}")
            finally:
                self._http_client = None

    # Private helper methods

    async def _statement(self, service: Service, path: str, statement: str, deadline: float,
                         token: CancellationToken, parameters: Optional[Dict[str, Any]]) -> List[Any]:
        payload: Dict[str, Any] = {"statement": statement}
        for name, value in (parameters or {}).items():
            payload[f"${name}"] = value
        response = await self.request(service, "POST", path, deadline, token, json=payload)
        body = _body(response)
        if not isinstance(body, dict):
            raise OperationFailedError(f"Unexpected {service.value} response", self.record.identifier)
        if body.get("errors"):
            messages = "; ".join(str(error.get("msg", error)) for error in body["errors"])
            raise OperationFailedError(messages, self.record.identifier)
        return list(body.get("results") or [])

    @staticmethod
    def _document_path(bucket: str, scope: Optional[str], collection: Optional[str], key: str) -> str:
        return (f"/pools/default/buckets/{quote_segment(bucket)}"
                f"/scopes/{quote_segment(scope or DEFAULT_SCOPE)}"
                f"/collections/{quote_segment(collection or DEFAULT_COLLECTION)}"
                f"/docs/{quote_segment(key)}")


def _body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_detail(response: httpx.Response) -> str:
    body = _body(response)
    if isinstance(body, dict):
        for key in ("errors", "message", "error", "reason"):
            if body.get(key):
                return str(body[key])
    return str(body or response.reason_phrase)
