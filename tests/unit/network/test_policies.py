# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the pipeline policies.
"""

import email.utils
import logging
import platform
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from restpipe.config import HttpLogDetailLevel, HttpLogOptions
from restpipe.errors import ResponseValidationError, TransportError, ValidationError
from restpipe.network.policies import (
    AccessToken,
    AddDatePolicy,
    ApiKeyCredential,
    ApiKeyCredentialPolicy,
    BearerTokenCredentialPolicy,
    HeadersPolicy,
    HttpLoggingPolicy,
    RequestIdPolicy,
    ResponseValidationPolicy,
    SansIOHTTPPolicy,
    UserAgentPolicy,
)
from restpipe.network.transport import HttpRequest, HttpResponse


def _ok(headers=None, content=b""):
    async def next_(request):
        return HttpResponse(200, headers or {}, content, request=request)

    return next_


class TestSansIOHTTPPolicy:
    @pytest.mark.asyncio
    async def test_hooks_called_around_next(self):
        calls = []

        class Recorder(SansIOHTTPPolicy):
            def on_request(self, request):
                calls.append("request")

            async def on_response(self, request, response):
                calls.append("response")

        async def next_(request):
            calls.append("next")
            return HttpResponse(200, request=request)

        await Recorder().send(HttpRequest("GET", "https://a"), next_)
        assert calls == ["request", "next", "response"]

    @pytest.mark.asyncio
    async def test_exception_hook_then_propagates(self):
        seen = []

        class Recorder(SansIOHTTPPolicy):
            def on_exception(self, request, exc):
                seen.append(exc)

        error = TransportError("boom")
        next_ = AsyncMock(side_effect=error)
        with pytest.raises(TransportError):
            await Recorder().send(HttpRequest("GET", "https://a"), next_)
        assert seen == [error]


@pytest.mark.asyncio
async def test_headers_policy_overwrites():
    request = HttpRequest("GET", "https://a", headers={"x-a": "old"})
    policy = HeadersPolicy({"x-a": "new"})
    policy.add_header("x-b", "b")
    await policy.send(request, _ok())
    assert request.headers["x-a"] == "new"
    assert request.headers["x-b"] == "b"


class TestUserAgentPolicy:
    def test_full_user_agent(self):
        policy = UserAgentPolicy("keys", "1.2.3", application_id="myapp")
        assert policy.user_agent.startswith("myapp restpipe-keys/1.2.3 Python/")
        assert platform.python_version() in policy.user_agent

    def test_telemetry_disabled(self):
        policy = UserAgentPolicy("keys", "1.2.3", telemetry_disabled=True)
        assert policy.user_agent == "restpipe-keys/1.2.3"

    @pytest.mark.asyncio
    async def test_sets_header(self):
        request = HttpRequest("GET", "https://a")
        policy = UserAgentPolicy(telemetry_disabled=True)
        await policy.send(request, _ok())
        assert request.headers["user-agent"] == "restpipe-core/0.1.0"


class TestRequestIdPolicy:
    @pytest.mark.asyncio
    async def test_generates_uuid(self):
        request = HttpRequest("GET", "https://a")
        await RequestIdPolicy().send(request, _ok())
        request_id = request.headers["x-ms-client-request-id"]
        assert uuid.UUID(request_id).version == 4
        assert request.context["request_id"] == request_id

    @pytest.mark.asyncio
    async def test_keeps_existing_id(self):
        request = HttpRequest("GET", "https://a", headers={"x-req": "abc"})
        await RequestIdPolicy("x-req").send(request, _ok())
        assert request.headers["x-req"] == "abc"
        assert request.context["request_id"] == "abc"


@pytest.mark.asyncio
async def test_add_date_policy_rfc1123():
    request = HttpRequest("GET", "https://a")
    await AddDatePolicy().send(request, _ok())
    value = request.headers["date"]
    assert value.endswith("GMT")
    assert email.utils.parsedate_to_datetime(value) is not None


class TestCredentialPolicies:
    def test_api_key_must_be_non_empty(self):
        with pytest.raises(ValidationError):
            ApiKeyCredential("")

    @pytest.mark.asyncio
    async def test_api_key_policy(self):
        credential = ApiKeyCredential("k1")
        policy = ApiKeyCredentialPolicy(credential)
        request = HttpRequest("GET", "https://a")
        await policy.send(request, _ok())
        assert request.headers["x-api-key"] == "k1"

        credential.update("k2")
        await policy.send(request, _ok())
        assert request.headers["x-api-key"] == "k2"

    @pytest.mark.asyncio
    async def test_api_key_policy_prefix(self):
        policy = ApiKeyCredentialPolicy(
            ApiKeyCredential("k"), "Authorization", prefix="SharedKey"
        )
        request = HttpRequest("GET", "https://a")
        await policy.send(request, _ok())
        assert request.headers["authorization"] == "SharedKey k"

    @pytest.mark.asyncio
    async def test_bearer_sync_credential_string(self):
        credential = MagicMock()
        credential.get_token = MagicMock(return_value="tok")
        policy = BearerTokenCredentialPolicy(credential, "scope/.default")
        request = HttpRequest("GET", "https://vault.example.net/keys")
        await policy.send(request, _ok())
        assert request.headers["authorization"] == "Bearer tok"
        credential.get_token.assert_called_once_with("scope/.default")

    @pytest.mark.asyncio
    async def test_bearer_async_credential_access_token(self):
        credential = MagicMock()
        credential.get_token = AsyncMock(return_value=AccessToken("abc", 0))
        policy = BearerTokenCredentialPolicy(credential)
        request = HttpRequest("GET", "https://a")
        await policy.send(request, _ok())
        assert request.headers["authorization"] == "Bearer abc"

    @pytest.mark.asyncio
    async def test_bearer_requires_https(self):
        credential = MagicMock()
        credential.get_token = MagicMock(return_value="tok")
        policy = BearerTokenCredentialPolicy(credential)
        next_ = AsyncMock()
        with pytest.raises(ValidationError):
            await policy.send(HttpRequest("GET", "http://insecure"), next_)
        next_.assert_not_awaited()
        credential.get_token.assert_not_called()

    def test_bearer_rejects_credential_without_get_token(self):
        with pytest.raises(ValidationError):
            BearerTokenCredentialPolicy(object())


class TestResponseValidationPolicy:
    @pytest.mark.asyncio
    async def test_matching_echo_passes(self):
        request = HttpRequest("GET", "https://a", headers={"x-ms-client-request-id": "1"})
        response = await ResponseValidationPolicy().send(
            request, _ok({"x-ms-client-request-id": "1"})
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_echo_passes(self):
        request = HttpRequest("GET", "https://a", headers={"x-ms-client-request-id": "1"})
        await ResponseValidationPolicy().send(request, _ok())

    @pytest.mark.asyncio
    async def test_mismatched_echo_raises(self):
        request = HttpRequest("GET", "https://a", headers={"x-ms-client-request-id": "1"})
        with pytest.raises(ResponseValidationError):
            await ResponseValidationPolicy().send(
                request, _ok({"x-ms-client-request-id": "2"})
            )


class TestHttpLoggingPolicy:
    def test_redact_url(self):
        policy = HttpLoggingPolicy()
        redacted = policy.redact_url(
            "https://a.example/keys?api-version=7.4&sig=secret&se=2025"
        )
        assert "api-version=7.4" in redacted
        assert "sig=REDACTED" in redacted
        assert "se=REDACTED" in redacted
        assert "secret" not in redacted

    def test_redact_url_without_query(self):
        assert HttpLoggingPolicy().redact_url("https://a/x") == "https://a/x"

    def test_redact_headers(self):
        policy = HttpLoggingPolicy(HttpLogOptions(allowed_header_names={"X-Safe"}))
        request = HttpRequest(
            "GET", "https://a", headers={"Authorization": "Bearer t", "X-Safe": "ok"}
        )
        redacted = policy.redact_headers(request.headers)
        assert redacted["authorization"] == "REDACTED"
        assert redacted["x-safe"] == "ok"

    @pytest.mark.asyncio
    async def test_logs_basic_without_headers(self, caplog):
        policy = HttpLoggingPolicy()
        request = HttpRequest(
            "GET", "https://a/x?sig=secret", headers={"Authorization": "Bearer t"}
        )
        with caplog.at_level(logging.INFO, logger="restpipe.network.policies"):
            await policy.send(request, _ok())
        text = caplog.text
        assert "GET https://a/x?sig=REDACTED" in text
        assert "<-- 200" in text
        assert "Bearer t" not in text
        assert "secret" not in text
        assert "Request headers" not in text

    @pytest.mark.asyncio
    async def test_logs_body_only_at_body_level(self, caplog):
        request = HttpRequest("POST", "https://a", json={"name": "visible"})
        headers_only = HttpLoggingPolicy(
            HttpLogOptions(detail_level=HttpLogDetailLevel.HEADERS)
        )
        with caplog.at_level(logging.INFO, logger="restpipe.network.policies"):
            await headers_only.send(request, _ok())
        assert "Request headers" in caplog.text
        assert "visible" not in caplog.text

        caplog.clear()
        with_body = HttpLoggingPolicy(
            HttpLogOptions(detail_level=HttpLogDetailLevel.BODY_AND_HEADERS)
        )
        with caplog.at_level(logging.INFO, logger="restpipe.network.policies"):
            await with_body.send(request, _ok(content=b"response-body"))
        assert "visible" in caplog.text
        assert "response-body" in caplog.text

    @pytest.mark.asyncio
    async def test_none_level_logs_nothing(self, caplog):
        policy = HttpLoggingPolicy(HttpLogOptions(detail_level=HttpLogDetailLevel.NONE))
        with caplog.at_level(logging.INFO, logger="restpipe.network.policies"):
            await policy.send(HttpRequest("GET", "https://a"), _ok())
        assert caplog.records == []

    @pytest.mark.asyncio
    async def test_logs_and_reraises_failures(self, caplog):
        policy = HttpLoggingPolicy()
        next_ = AsyncMock(side_effect=TransportError("reset"))
        with caplog.at_level(logging.INFO, logger="restpipe.network.policies"):
            with pytest.raises(TransportError):
                await policy.send(HttpRequest("GET", "https://a"), next_)
        assert "failed after" in caplog.text
