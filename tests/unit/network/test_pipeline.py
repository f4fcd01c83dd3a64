# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for Pipeline composition and the standard policy order.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from restpipe.config import PipelineOptions, RetryOptions
from restpipe.errors import ResponseValidationError, ValidationError
from restpipe.network.pipeline import Pipeline, build_pipeline
from restpipe.network.policies import (
    AddDatePolicy,
    ApiKeyCredential,
    ApiKeyCredentialPolicy,
    HeadersPolicy,
    HTTPPolicy,
    HttpLoggingPolicy,
    RequestIdPolicy,
    ResponseValidationPolicy,
    UserAgentPolicy,
)
from restpipe.network.retry import RetryPolicy
from restpipe.network.transport import HttpRequest, HttpResponse, HttpxTransport


class StubTransport:
    def __init__(self, *statuses, headers=None):
        self.statuses = list(statuses) or [200]
        self.headers = headers or {}
        self.requests = []
        self.close = AsyncMock()

    async def send(self, request):
        self.requests.append(request)
        status = self.statuses[min(len(self.requests) - 1, len(self.statuses) - 1)]
        return HttpResponse(status, self.headers, request=request)


class TracePolicy(HTTPPolicy):
    def __init__(self, name, trace):
        self.name = name
        self.trace = trace

    async def send(self, request, next_):
        self.trace.append(f"{self.name}:in")
        response = await next_(request)
        self.trace.append(f"{self.name}:out")
        return response


class SetHeader(HTTPPolicy):
    def __init__(self, value):
        self.value = value

    async def send(self, request, next_):
        request.headers["x-shared"] = self.value
        return await next_(request)


class ShortCircuit(HTTPPolicy):
    async def send(self, request, next_):
        return HttpResponse(299, request=request)


@pytest.mark.asyncio
async def test_onion_order():
    trace = []
    pipeline = Pipeline(
        StubTransport(), [TracePolicy("a", trace), TracePolicy("b", trace)]
    )
    await pipeline.send(HttpRequest("GET", "https://a"))
    assert trace == ["a:in", "b:in", "b:out", "a:out"]


@pytest.mark.asyncio
async def test_last_writer_wins_in_chain_order():
    transport = StubTransport()
    pipeline = Pipeline(transport, [SetHeader("first"), SetHeader("second")])
    await pipeline.send(HttpRequest("GET", "https://a"))
    assert transport.requests[0].headers["x-shared"] == "second"


@pytest.mark.asyncio
async def test_short_circuit_skips_transport():
    transport = StubTransport()
    pipeline = Pipeline(transport, [ShortCircuit()])
    response = await pipeline.send(HttpRequest("GET", "https://a"))
    assert response.status_code == 299
    assert transport.requests == []


@pytest.mark.asyncio
async def test_empty_pipeline_calls_transport():
    transport = StubTransport(204)
    pipeline = Pipeline(transport)
    assert pipeline.policies == ()
    assert (await pipeline.send(HttpRequest("GET", "https://a"))).status_code == 204


def test_rejects_non_policy():
    with pytest.raises(ValidationError):
        Pipeline(StubTransport(), [object()])


@pytest.mark.asyncio
async def test_close_and_context_manager():
    transport = StubTransport()
    async with Pipeline(transport) as pipeline:
        assert pipeline.transport is transport
    transport.close.assert_awaited_once()


class TestBuildPipeline:
    def test_standard_order(self):
        extra = SetHeader("x")
        credential = ApiKeyCredentialPolicy(ApiKeyCredential("k"))
        pipeline = build_pipeline(
            StubTransport(),
            options=PipelineOptions(default_headers={"x-tenant": "t"}),
            credential_policy=credential,
            additional_policies=[extra],
        )
        kinds = [type(p) for p in pipeline.policies]
        assert kinds == [
            HeadersPolicy,
            UserAgentPolicy,
            RequestIdPolicy,
            AddDatePolicy,
            ApiKeyCredentialPolicy,
            RetryPolicy,
            SetHeader,
            ResponseValidationPolicy,
            HttpLoggingPolicy,
        ]
        assert pipeline.policies[4] is credential
        assert pipeline.policies[6] is extra

    def test_without_optional_policies(self):
        pipeline = build_pipeline(StubTransport())
        kinds = [type(p) for p in pipeline.policies]
        assert HeadersPolicy not in kinds
        assert ApiKeyCredentialPolicy not in kinds
        assert kinds[0] is UserAgentPolicy

    def test_options_validated(self):
        with pytest.raises(ValidationError):
            build_pipeline(StubTransport(), options={"sdk_name": "x"})

    @pytest.mark.asyncio
    async def test_request_id_stable_across_retries(self):
        transport = StubTransport(503, 200)
        options = PipelineOptions(retry=RetryOptions(base_delay=0.0, max_delay=0.0))
        pipeline = build_pipeline(transport, options=options)

        response = await pipeline.send(HttpRequest("GET", "https://a"))

        assert response.status_code == 200
        assert response.attempts == 2
        ids = {r.headers["x-ms-client-request-id"] for r in transport.requests}
        assert len(ids) == 1

    @pytest.mark.asyncio
    async def test_mismatched_echo_is_rejected(self):
        transport = StubTransport(200, headers={"x-ms-client-request-id": "other"})
        pipeline = build_pipeline(transport)
        with pytest.raises(ResponseValidationError):
            await pipeline.send(HttpRequest("GET", "https://a"))

    @pytest.mark.asyncio
    async def test_end_to_end_over_httpx(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if len(seen) == 1:
                return httpx.Response(500)
            return httpx.Response(
                200,
                headers={
                    "x-ms-client-request-id": request.headers["x-ms-client-request-id"]
                },
                json={"name": "key1"},
            )

        transport = HttpxTransport(
            httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        options = PipelineOptions(
            sdk_name="keys",
            sdk_version="4.0.0",
            retry=RetryOptions(base_delay=0.0, max_delay=0.0),
        )
        async with build_pipeline(
            transport,
            options=options,
            credential_policy=ApiKeyCredentialPolicy(ApiKeyCredential("secret")),
        ) as pipeline:
            response = await pipeline.send(
                HttpRequest("GET", "https://vault.example.net/keys/key1")
            )

        assert response.json() == {"name": "key1"}
        assert response.attempts == 2
        assert len(seen) == 2
        final = seen[-1]
        assert final.headers["x-api-key"] == "secret"
        assert final.headers["user-agent"].startswith("restpipe-keys/4.0.0")
        assert "date" in final.headers
