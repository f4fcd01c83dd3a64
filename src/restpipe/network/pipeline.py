# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
The policy chain.

Policies are composed onion style: the first policy sees the request first
and the response last; the transport sits at the center.
"""

import logging
from collections.abc import Sequence
from typing import Optional

from restpipe.config import PipelineOptions
from restpipe.errors import ValidationError
from restpipe.network.policies import (
    AddDatePolicy,
    HeadersPolicy,
    HTTPPolicy,
    HttpLoggingPolicy,
    NextPolicy,
    RequestIdPolicy,
    ResponseValidationPolicy,
    UserAgentPolicy,
)
from restpipe.network.retry import RetryPolicy
from restpipe.network.transport import AsyncTransport, HttpRequest, HttpResponse

__all__ = [
    "Pipeline",
    "build_pipeline",
]

logger = logging.getLogger(__name__)


class Pipeline:
    """An ordered chain of policies terminating in a transport."""

    def __init__(
        self, transport: AsyncTransport, policies: Sequence[HTTPPolicy] = ()
    ):
        for policy in policies:
            if not isinstance(policy, HTTPPolicy):
                raise ValidationError(
                    f"Pipeline policies must be HTTPPolicy instances, got {policy!r}"
                )
        self._transport = transport
        self._policies = tuple(policies)
        self._chain = self._compose()

    @property
    def transport(self) -> AsyncTransport:
        return self._transport

    @property
    def policies(self) -> tuple[HTTPPolicy, ...]:
        return self._policies

    def _compose(self) -> NextPolicy:
        chain: NextPolicy = self._transport.send
        for policy in reversed(self._policies):
            next_chain = chain

            async def _wrapped(
                request: HttpRequest,
                *,
                _policy: HTTPPolicy = policy,
                _next: NextPolicy = next_chain,
            ) -> HttpResponse:
                return await _policy.send(request, _next)

            chain = _wrapped
        return chain

    async def send(self, request: HttpRequest) -> HttpResponse:
        """Run ``request`` through every policy and the transport."""
        return await self._chain(request)

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> "Pipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def build_pipeline(
    transport: AsyncTransport,
    *,
    options: Optional[PipelineOptions] = None,
    credential_policy: Optional[HTTPPolicy] = None,
    additional_policies: Sequence[HTTPPolicy] = (),
) -> Pipeline:
    """
    Assemble the standard policy order.

    The order is: default headers, user agent, request id, date, credential,
    retry, additional policies, response validation, logging. Policies after
    retry run once per attempt.

    Args:
        transport: The transport at the end of the chain.
        options: Pipeline options; defaults to ``PipelineOptions()``.
        credential_policy: Optional policy attaching authorization.
        additional_policies: Caller policies run on every attempt.

    Returns:
        The composed Pipeline.
    """
    if options is None:
        options = PipelineOptions()
    elif not isinstance(options, PipelineOptions):
        raise ValidationError(f"options must be PipelineOptions, got {options!r}")

    policies: list[HTTPPolicy] = []
    if options.default_headers:
        policies.append(HeadersPolicy(options.default_headers))
    policies.extend(
        [
            UserAgentPolicy(
                options.sdk_name,
                options.sdk_version,
                application_id=options.application_id,
                telemetry_disabled=options.telemetry_disabled,
            ),
            RequestIdPolicy(options.request_id_header),
            AddDatePolicy(),
        ]
    )
    if credential_policy is not None:
        policies.append(credential_policy)
    policies.append(RetryPolicy(options.retry))
    policies.extend(additional_policies)
    policies.append(ResponseValidationPolicy((options.request_id_header,)))
    policies.append(HttpLoggingPolicy(options.logging))

    logger.debug(
        "Built pipeline: " + " -> ".join(type(p).__name__ for p in policies)
    )
    return Pipeline(transport, policies)
