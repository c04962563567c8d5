"""Tests for the Meta API client over httpx.MockTransport."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from argus.connectors.meta.client import MetaAPIError, MetaClient


def _client(handler):
    return MetaClient(
        access_token="tok_123",
        ad_account_id="998877",
        transport=httpx.MockTransport(handler),
        retry_base_delay=0,
    )


class TestMetaClient:
    @pytest.mark.asyncio
    async def test_create_adset_posts_form_encoded_params(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json={"id": "adset_42"})

        client = _client(handler)
        result = await client.create_adset(
            {"name": "AdSet", "targeting": {"age_min": 18}, "is_dynamic_creative": False, "bid_amount": None}
        )
        await client.close()

        assert result == {"id": "adset_42"}
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path.endswith("/act_998877/adsets")
        assert request.url.params["access_token"] == "tok_123"
        form = parse_qs(request.content.decode())
        assert json.loads(form["targeting"][0]) == {"age_min": 18}
        assert form["is_dynamic_creative"] == ["false"]
        assert "bid_amount" not in form

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        responses = [httpx.Response(429), httpx.Response(200, json={"id": "ad_1"})]

        client = _client(lambda request: responses.pop(0))
        result = await client.create_ad({"name": "Ad", "adset_id": "a"})
        await client.close()

        assert result["id"] == "ad_1"
        assert responses == []

    @pytest.mark.asyncio
    async def test_client_error_carries_meta_code(self):
        def handler(request):
            return httpx.Response(
                400, json={"error": {"message": "(#100) Invalid parameter", "code": 100}}
            )

        client = _client(handler)
        with pytest.raises(MetaAPIError) as exc_info:
            await client.update_entity("adset_1", {"status": "PAUSED"})
        await client.close()

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == 100
        assert "Invalid parameter" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"error": {"message": "Unknown error", "code": 1}})

        client = _client(handler)
        with pytest.raises(MetaAPIError):
            await client.fetch_entity("cmp_1", "id,name")
        await client.close()
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_writes_are_not_replayed_on_connection_error(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            raise httpx.ConnectError("connection reset")

        client = _client(handler)
        with pytest.raises(MetaAPIError):
            await client.create_ad({"name": "Ad", "adset_id": "a"})
        assert calls == ["POST"]

        with pytest.raises(MetaAPIError):
            await client.fetch_entity("ad_1", "id")
        await client.close()
        assert calls == ["POST", "GET", "GET", "GET"]

    @pytest.mark.asyncio
    async def test_fetch_entity_passes_fields(self):
        def handler(request):
            assert request.url.params["fields"] == "id,name,status"
            return httpx.Response(200, json={"id": "cmp_1", "name": "Spring", "status": "ACTIVE"})

        client = _client(handler)
        result = await client.fetch_entity("cmp_1", "id,name,status")
        await client.close()
        assert result["name"] == "Spring"

    @pytest.mark.asyncio
    async def test_malformed_json_error_body_still_raises_meta_error(self):
        def handler(request):
            return httpx.Response(
                400, content=b"{not json", headers={"content-type": "application/json"}
            )

        client = _client(handler)
        with pytest.raises(MetaAPIError) as exc_info:
            await client.update_entity("adset_1", {"status": "PAUSED"})
        await client.close()

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == 0
