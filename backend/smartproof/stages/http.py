"""
ServiceStage — a stage whose work is done by an external HTTP service.

Content extraction, visual analysis, product lookup, rule evaluation and
knowledge-base indexing each live behind their own service.  The stage
POSTs one JSON body and uses the JSON response as its output:

    POST {url}
    {
        "documentId": "doc-123",
        "inputs": {"content-extraction": {...}, "visual-analysis": null},
        "config": {...}
    }

`requires` lists upstream stages whose outputs must be present (missing →
MissingDependencyError, fail fast).  `uses` lists optional upstream stages
forwarded as null when their output is absent.

Usage::

    ServiceStage(
        name="compliance-check",
        url="http://compliance:7004/check-compliance",
        requires=["content-extraction"],
        uses=["visual-analysis", "reference-lookup"],
    )
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Sequence

import httpx

from smartproof.core.logging import get_logger
from smartproof.workflow.errors import ServiceRequestError
from smartproof.workflow.stage import StageOutputs

logger = get_logger(__name__)

# Default timeout for service calls (seconds)
DEFAULT_TIMEOUT = 300.0


class ServiceStage:
    """Stage callable backed by an HTTP service."""

    def __init__(
        self,
        name: str,
        url: str,
        *,
        requires: Sequence[str] = (),
        uses: Sequence[str] = (),
        timeout: float = DEFAULT_TIMEOUT,
        api_key: str | None = None,
        expected_status_codes: Sequence[int] = (200, 201, 202),
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            name: Stage name (used for logs and error context).
            url: Service endpoint receiving the POST.
            requires: Upstream stages that must have completed.
            uses: Optional upstream stages, forwarded as null when absent.
            timeout: HTTP timeout in seconds.
            api_key: Sent as a Bearer token when set.
            expected_status_codes: Acceptable response codes.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self.name = name
        self.url = url
        self.requires = tuple(requires)
        self.uses = tuple(uses)
        self._timeout = timeout
        self._api_key = api_key
        self._expected_status = tuple(expected_status_codes)
        self._transport = transport

    def build_request(
        self,
        document_id: str,
        outputs: StageOutputs,
        config: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Request body for this invocation."""
        inputs = {name: outputs.require(name) for name in self.requires}
        inputs.update({name: outputs.get(name) for name in self.uses})
        return {
            "documentId": document_id,
            "inputs": inputs,
            "config": dict(config),
        }

    async def __call__(
        self,
        document_id: str,
        outputs: StageOutputs,
        config: Mapping[str, Any],
    ) -> Any:
        body = self.build_request(document_id, outputs, config)

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        logger.info(
            "Calling stage service",
            stage=self.name,
            url=self.url,
            document_id=document_id,
            inputs=sorted(body["inputs"]),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise ServiceRequestError(
                f"Request to {self.url} failed: {exc}",
                document_id=document_id,
                stage_name=self.name,
            ) from exc

        if response.status_code not in self._expected_status:
            raise ServiceRequestError(
                f"Service returned {response.status_code}",
                status_code=response.status_code,
                response_body=response.text[:2000],
                document_id=document_id,
                stage_name=self.name,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ServiceRequestError(
                "Service returned a non-JSON body",
                status_code=response.status_code,
                response_body=response.text[:2000],
                document_id=document_id,
                stage_name=self.name,
            ) from exc

        logger.info(
            "Stage service responded",
            stage=self.name,
            document_id=document_id,
            status_code=response.status_code,
        )
        return data
