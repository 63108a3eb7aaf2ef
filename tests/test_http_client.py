"""Unit tests for ClusterClient."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from cbshell.client.http_client import ClusterClient, Service
from cbshell.client.requests import ManagementRequest
from cbshell.exceptions import OperationCancelledError, OperationFailedError, OperationTimeoutError
from cbshell.execution.cancellation import CancellationToken
from cbshell.models.cluster import TlsConfig

from conftest import deadline_in, make_record


def client_for(handler, **kwargs) -> ClusterClient:
    return ClusterClient(make_record("local", **kwargs), transport=httpx.MockTransport(handler))


def form_of(request: httpx.Request):
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


@pytest.mark.unit
class TestClusterClient:
    """Test cases for ClusterClient class."""

    def test_base_url(self):
        plain = ClusterClient(make_record("local", connstr="couchbase://node1,node2"))
        secure = ClusterClient(make_record("local", connstr="couchbases://node1"))

        assert plain.base_url(Service.MANAGEMENT) == "http://node1:8091"
        assert plain.base_url(Service.QUERY) == "http://node1:8093"
        assert secure.base_url(Service.MANAGEMENT) == "https://node1:18091"
        assert secure.base_url(Service.SEARCH) == "https://node1:18094"

    def test_tls_setting_selects_secure_ports(self):
        client = ClusterClient(make_record("local", tls=TlsConfig(enabled=True)))

        assert client.base_url(Service.ANALYTICS) == "https://local.example.com:18095"

    @pytest.mark.asyncio
    async def test_http_client_property(self):
        """Test HTTP client property creates client when needed."""
        client = ClusterClient(make_record("local"))
        assert client._http_client is None

        http_client = client.http_client
        assert isinstance(http_client, httpx.AsyncClient)
        assert client.http_client is http_client

        await client.close()
        assert client._http_client is None

    @pytest.mark.asyncio
    async def test_management_request(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json=[{"name": "travel-sample"}])

        async with client_for(handler) as client:
            body = await client.management_request(ManagementRequest.get_buckets(), deadline_in(5), CancellationToken())

        assert body == [{"name": "travel-sample"}]
        assert seen["method"] == "GET"
        assert seen["url"] == "http://local.example.com:8091/pools/default/buckets"
        assert seen["auth"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_management_request_sends_form(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["form"] = form_of(request)
            return httpx.Response(200)

        request = ManagementRequest.create_collection("travel sample", "inventory", "airline", max_expiry=60)
        async with client_for(handler) as client:
            assert await client.management_request(request, deadline_in(5), CancellationToken()) is None

        assert seen["path"] == "/pools/default/buckets/travel sample/scopes/inventory/collections"
        assert seen["form"] == {"name": "airline", "maxTTL": "60"}

    @pytest.mark.asyncio
    async def test_error_status_raises_operation_failed(self):
        def handler(request):
            return httpx.Response(404, json={"errors": "Requested resource not found."})

        async with client_for(handler) as client:
            with pytest.raises(OperationFailedError) as exc_info:
                await client.management_request(ManagementRequest.get_scopes("nope"), deadline_in(5), CancellationToken())

        assert exc_info.value.status_code == 404
        assert exc_info.value.cluster_id == "local"
        assert "Requested resource not found." in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_raises_operation_failed(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async with client_for(handler) as client:
            with pytest.raises(OperationFailedError, match="connection refused"):
                await client.management_request(ManagementRequest.ping(), deadline_in(5), CancellationToken())

    @pytest.mark.asyncio
    async def test_transport_timeout_raises_operation_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out")

        async with client_for(handler) as client:
            with pytest.raises(OperationTimeoutError):
                await client.management_request(ManagementRequest.ping(), deadline_in(5), CancellationToken())

    @pytest.mark.asyncio
    async def test_expired_deadline_sends_nothing(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        async with client_for(handler) as client:
            with pytest.raises(OperationTimeoutError):
                await client.management_request(ManagementRequest.ping(), deadline_in(-1), CancellationToken())

        assert calls == []

    @pytest.mark.asyncio
    async def test_cancelled_token_sends_nothing(self):
        calls = []
        token = CancellationToken()
        token.cancel()

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        async with client_for(handler) as client:
            with pytest.raises(OperationCancelledError):
                await client.management_request(ManagementRequest.ping(), deadline_in(5), token)

        assert calls == []

    @pytest.mark.asyncio
    async def test_query(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "success", "results": [{"n": 1}, {"n": 2}]})

        async with client_for(handler) as client:
            rows = await client.query("SELECT $n AS n", deadline_in(5), CancellationToken(), parameters={"n": 1})

        assert rows == [{"n": 1}, {"n": 2}]
        assert seen["url"] == "http://local.example.com:8093/query/service"
        assert seen["payload"] == {"statement": "SELECT $n AS n", "$n": 1}

    @pytest.mark.asyncio
    async def test_query_errors(self):
        def handler(request):
            return httpx.Response(200, json={"status": "errors", "errors": [{"code": 3000, "msg": "syntax error"}]})

        async with client_for(handler) as client:
            with pytest.raises(OperationFailedError, match="syntax error"):
                await client.query("SELEC 1", deadline_in(5), CancellationToken())

    @pytest.mark.asyncio
    async def test_analytics(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"results": [1]})

        async with client_for(handler) as client:
            assert await client.analytics("SELECT 1", deadline_in(5), CancellationToken()) == [1]

        assert seen["url"] == "http://local.example.com:8095/analytics/service"

    @pytest.mark.asyncio
    async def test_search(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"hits": [{"id": "airline_10", "score": 1.5, "index": "idx_1"}]})

        async with client_for(handler) as client:
            hits = await client.search("travel", "airline", deadline_in(5), CancellationToken(), limit=5)

        assert hits == [{"id": "airline_10", "score": 1.5, "index": "idx_1"}]
        assert seen["path"] == "/api/index/travel/query"
        assert seen["payload"] == {"query": {"query": "airline"}, "size": 5}

    @pytest.mark.asyncio
    async def test_get_document(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            return httpx.Response(200, json={"json": '{"name": "x"}', "meta": {"id": "k", "cas": 42}})

        async with client_for(handler) as client:
            document = await client.get_document("travel-sample", "k", deadline_in(5), CancellationToken())

        assert document == {"id": "k", "content": {"name": "x"}, "cas": 42}
        assert seen["path"] == "/pools/default/buckets/travel-sample/scopes/_default/collections/_default/docs/k"

    @pytest.mark.asyncio
    async def test_upsert_document(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["form"] = form_of(request)
            return httpx.Response(200)

        async with client_for(handler) as client:
            await client.upsert_document("b", "k", {"a": 1}, deadline_in(5), CancellationToken(),
                                         scope="s", collection="c", expiry=30)

        assert seen["method"] == "POST"
        assert seen["path"] == "/pools/default/buckets/b/scopes/s/collections/c/docs/k"
        assert json.loads(seen["form"]["value"]) == {"a": 1}
        assert seen["form"]["expiry"] == "30"

    @pytest.mark.asyncio
    async def test_remove_document(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            return httpx.Response(200)

        async with client_for(handler) as client:
            await client.remove_document("b", "k", deadline_in(5), CancellationToken())

        assert seen["method"] == "DELETE"


@pytest.mark.unit
class TestManagementRequest:
    """Test typed management requests."""

    def test_path_segments_are_quoted(self):
        request = ManagementRequest.drop_scope("my/bucket", "scope one")

        assert request.method == "DELETE"
        assert request.path == "/pools/default/buckets/my%2Fbucket/scopes/scope%20one"

    def test_upsert_user_form(self):
        request = ManagementRequest.upsert_user("alice", ["admin", "bucket_admin[travel]"], password="pw",
                                                display_name="Alice")

        assert request.method == "PUT"
        assert request.path == "/settings/rbac/users/local/alice"
        assert request.form == {"roles": "admin,bucket_admin[travel]", "password": "pw", "name": "Alice"}

    def test_requests_without_form(self):
        assert ManagementRequest.get_users().form == {}
        assert ManagementRequest.whoami().path == "/whoami"
        assert ManagementRequest.get_nodes().path == "/pools/default"
