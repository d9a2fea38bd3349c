"""
AlvaClient — async client for the Alva chat and GraphQL query endpoints.

Responsibility:
- Create a dashboard session (POST /chat, line-delimited JSON stream)
- Fetch dashboard config, time-series data and typedocs (POST /query)
- Decode the double-encoded JSON payloads
- Map transport/GraphQL failures to AlvaError subclasses
"""

import asyncio
import json
import logging
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from alva.progress import WidgetTask, parse_stream_line, parse_widget_tasks
from shared.models import DashboardConfig, DashboardSession, ParsedDataUri
from shared.settings import AlvaSettings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[list[WidgetTask]], Any]

GET_NODE_TYPEDOC_QUERY = (
    "query GetNodeTypedoc($input: GetNodeTypedocInput!) { GetNodeTypedoc(input: $input) { typedoc } }"
)


class AlvaError(RuntimeError):
    """Base class for Alva API failures."""


class AlvaTransportError(AlvaError):
    """Non-success HTTP status from an Alva endpoint."""

    def __init__(self, status_code: int, url: str = ""):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.url = url


class AlvaQueryError(AlvaError):
    """GraphQL `errors` payload or an unexpected response shape."""


class AlvaClient:
    """Async client bound to one bearer token."""

    def __init__(
        self,
        settings: AlvaSettings,
        token: str,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self.headers = {"Content-Type": "application/json", "Authorization": token}
        self._owns_client = http_client is None
        # trust_env picks up HTTPS_PROXY / https_proxy.
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.query_timeout_seconds,
            trust_env=True,
        )

    async def __aenter__(self) -> "AlvaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ─── Dashboard creation ─────────────────────────────────────

    async def create_dashboard(
        self,
        message: str,
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> DashboardSession:
        """Ask Alva to build a dashboard; returns once the event stream ends."""
        limit = timeout if timeout is not None else self.settings.create_timeout_seconds
        try:
            return await asyncio.wait_for(self._stream_creation(message, on_progress), timeout=limit)
        except asyncio.TimeoutError as e:
            raise AlvaError(f"Dashboard creation timed out after {limit:g}s") from e

    async def _stream_creation(self, message: str, on_progress: ProgressCallback | None) -> DashboardSession:
        body = {
            "message": message,
            "skill_id": self.settings.skill_id,
            "session_kind": "Dashboard",
            "input_image_urls": [],
            "timezone": self.settings.timezone,
            "timezone_offset_min": self.settings.timezone_offset_min,
        }
        session_id: str | None = None
        session_name: str | None = None

        logger.info("Creating dashboard via %s", self.settings.chat_endpoint)
        async with self._client.stream(
            "POST",
            self.settings.chat_endpoint,
            json=body,
            headers=self.headers,
            timeout=httpx.Timeout(self.settings.query_timeout_seconds, read=None),
        ) as response:
            if not response.is_success:
                logger.error("Dashboard creation failed with HTTP %s", response.status_code)
                raise AlvaTransportError(response.status_code, self.settings.chat_endpoint)

            async for line in response.aiter_lines():
                event = parse_stream_line(line)
                if event is None:
                    continue
                if event.get("session_id"):
                    session_id = str(event["session_id"])
                if event.get("session_name"):
                    session_name = str(event["session_name"])
                tasks = parse_widget_tasks(event.get("msg"))
                if tasks is not None and on_progress is not None:
                    on_progress(tasks)

        if not session_id:
            raise AlvaError("Dashboard stream ended without a session_id")
        return DashboardSession(session_id=session_id, session_name=session_name)

    # ─── GraphQL queries ────────────────────────────────────────

    async def _post_query(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = self.settings.query_endpoint
        response = await self._client.post(url, json=payload, headers=self.headers)
        try:
            body = response.json()
        except ValueError:
            raise AlvaTransportError(response.status_code, url)

        if not isinstance(body, dict):
            raise AlvaQueryError(f"Unexpected response from {payload.get('operationName')}")
        errors = body.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, dict) else str(first)
            raise AlvaQueryError(str(message or "GraphQL error"))
        if not response.is_success:
            raise AlvaTransportError(response.status_code, url)
        return body.get("data") or {}

    async def _persisted_query(self, operation: str, variables: dict[str, Any], sha256_hash: str) -> dict[str, Any]:
        return await self._post_query({
            "operationName": operation,
            "variables": variables,
            "extensions": {
                "clientLibrary": {
                    "name": self.settings.apollo_client_name,
                    "version": self.settings.apollo_client_version,
                },
                "persistedQuery": {"version": 1, "sha256Hash": sha256_hash},
            },
        })

    @staticmethod
    def _decode(data: dict[str, Any], operation: str, key: str) -> Any:
        node = data.get(operation)
        raw = node.get(key) if isinstance(node, dict) else None
        if not isinstance(raw, str):
            raise AlvaQueryError(f"{operation} returned no {key}")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise AlvaQueryError(f"{operation} returned malformed {key}: {e}") from e

    async def get_dashboard_config(self, session_id: str) -> DashboardConfig:
        data = await self._persisted_query(
            "GetDashboardConfig",
            {"input": {"sessionId": session_id}},
            self.settings.dashboard_config_hash,
        )
        payload = self._decode(data, "GetDashboardConfig", "config")
        if not isinstance(payload, dict):
            raise AlvaQueryError("GetDashboardConfig config is not an object")
        try:
            return DashboardConfig.model_validate(payload)
        except ValidationError as e:
            raise AlvaQueryError(f"GetDashboardConfig config is invalid: {e}") from e

    async def get_time_series_data(self, uri: str) -> Any:
        data = await self._persisted_query(
            "GetTimeSeriesData",
            {"input": {"uri": uri}},
            self.settings.timeseries_data_hash,
        )
        return self._decode(data, "GetTimeSeriesData", "data")

    async def get_node_typedoc(self, parsed: ParsedDataUri) -> str | None:
        data = await self._post_query({
            "operationName": "GetNodeTypedoc",
            "query": GET_NODE_TYPEDOC_QUERY,
            "variables": {
                "input": {
                    "jagentId": parsed.source_id,
                    "nodeName": parsed.node_name,
                    "outputName": parsed.output_name,
                }
            },
        })
        node = data.get("GetNodeTypedoc")
        typedoc = node.get("typedoc") if isinstance(node, dict) else None
        return typedoc or None
