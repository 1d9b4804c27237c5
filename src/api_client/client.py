"""Async HTTP client for the production backend.

One method per backend endpoint. Each method issues exactly one request,
decodes the JSON body into wire models and applies the endpoint's not-found
policy. There are no retries and no caching here.

Usage:
    async with ProductionAPI(base_url="http://localhost:3000") as api:
        analysis = await api.get_line_analysis(1)
        failures = await api.get_failure_records()
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from src.common.config import TOTAL_STAGES, Settings, settings as default_settings
from src.common.models import (
    FailureRecord,
    LineStatus,
    Product,
    ProductionLine,
    ProductionMetrics,
)

from .errors import (
    ApiError,
    InvalidInputError,
    RequestTimeoutError,
    ResponseFormatError,
    TransportError,
)
from .mapping import alert_to_failure
from .models import Alert, DailyTargets, LineAnalysis, ProductAnalysisRecord

logger = logging.getLogger(__name__)

EVENT_KINDS = ("start", "stop")


def validate_goal(goal: Any) -> int:
    """Parse a daily goal typed by an operator; it must be a positive integer."""
    if goal is None or isinstance(goal, bool):
        raise InvalidInputError("Enter a valid daily goal")
    if isinstance(goal, str):
        text = goal.strip()
        if not text:
            raise InvalidInputError("Enter a valid daily goal")
        try:
            goal = int(text)
        except ValueError:
            raise InvalidInputError("Daily goal must be a positive number") from None
    elif isinstance(goal, float):
        if not goal.is_integer():
            raise InvalidInputError("Daily goal must be a whole number")
        goal = int(goal)
    elif not isinstance(goal, int):
        raise InvalidInputError("Daily goal must be a positive number")
    if goal <= 0:
        raise InvalidInputError("Daily goal must be a positive number")
    return goal


def validate_stage(stage_id: Any) -> int:
    try:
        stage = int(stage_id)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid stage: {stage_id!r}") from None
    if not 1 <= stage <= TOTAL_STAGES:
        raise InvalidInputError(f"Stage must be between 1 and {TOTAL_STAGES}")
    return stage


def line_number(line_id: Any) -> int:
    """Numeric line identifier for request bodies."""
    try:
        return int(line_id)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid line id: {line_id!r}") from None


def _error_message(response: httpx.Response) -> str:
    """Best-effort message from an error body."""
    fallback = f"HTTP error! status: {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


def extract_product_id(body: Any) -> str | None:
    """Identifier of the product affected by a production event, if any."""
    if not isinstance(body, dict):
        return None
    for key in ("produtoId", "produto_id", "productId", "product_id"):
        if body.get(key) is not None:
            return str(body[key])
    nested = body.get("produto") or body.get("product")
    if isinstance(nested, dict) and nested.get("id") is not None:
        return str(nested["id"])
    if body.get("id") is not None:
        return str(body["id"])
    return None


class ProductionAPI:
    """Client for the production-line REST backend.

    Args:
        base_url: Backend root URL. Defaults to ``settings.api.base_url``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (an in-process stub in tests).
        settings: Settings providing defaults and alert interpretation.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.base_url = (base_url or self.settings.api.base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else self.settings.api.request_timeout
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    # --- Lifecycle ---

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def __aenter__(self) -> ProductionAPI:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # --- Transport ---

    async def _send(
        self,
        method: str,
        path: str,
        json: Any = None,
    ) -> httpx.Response:
        """Send a request; network failures become TransportError."""
        logger.debug("%s %s%s", method, self.base_url, path)
        try:
            return await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            logger.error("%s %s timed out after %.1fs", method, path, self.timeout)
            raise RequestTimeoutError(f"Request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise TransportError(f"Could not reach backend at {self.base_url}: {exc}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> Any:
        """Send a request and decode its JSON body.

        Returns None for a 404 when ``allow_not_found`` is set; any other
        non-2xx status raises ApiError.
        """
        response = await self._send(method, path, json=json)

        if response.status_code == 404 and allow_not_found:
            logger.info("%s %s: not found", method, path)
            return None

        if response.is_error:
            message = _error_message(response)
            logger.warning("%s %s -> %d: %s", method, path, response.status_code, message)
            raise ApiError(message, response.status_code, str(response.request.url))

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseFormatError(f"Invalid JSON from {path}") from exc

    @staticmethod
    def _parse(model: Any, data: Any, path: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise ResponseFormatError(f"Unexpected payload from {path}: {exc}") from exc

    # --- Analyses and lines ---

    async def get_line_analysis(self, line_id: int | str) -> LineAnalysis | None:
        """Today's analysis for a line; None if the backend has none."""
        path = f"/api/analise-tempo/linha/{line_id}/hoje"
        data = await self._request("GET", path, allow_not_found=True)
        if data is None:
            return None
        return self._parse(LineAnalysis, data, path)

    async def get_product_analysis(self, product_id: str) -> ProductAnalysisRecord | None:
        """Per-stage analysis of a product; None when the product is unknown."""
        path = f"/api/analise-tempo/produto/{product_id}"
        data = await self._request("GET", path, allow_not_found=True)
        if data is None:
            return None
        return self._parse(ProductAnalysisRecord, data, path)

    async def get_production_lines(self) -> list[ProductionLine]:
        """Lines as served by the older /api/production-lines endpoint."""
        path = "/api/production-lines"
        data = await self._request("GET", path, allow_not_found=True)
        if not data:
            return []
        return [self._parse(ProductionLine, item, path) for item in data]

    async def get_production_metrics(self) -> ProductionMetrics:
        """Backend-computed aggregates. Callers may fall back to zeroes."""
        path = "/api/production-metrics"
        data = await self._request("GET", path)
        return self._parse(ProductionMetrics, data or {}, path)

    async def update_line_status(self, line_id: int | str, status: LineStatus | str) -> bool:
        """Ask the backend to change a line's status. False on HTTP failure."""
        try:
            status = LineStatus(status)
        except ValueError:
            raise InvalidInputError(f"Unknown line status: {status!r}") from None
        try:
            await self._request(
                "PATCH",
                f"/api/production-lines/{line_id}/status",
                json={"status": status.value},
            )
        except ApiError:
            return False
        return True

    async def add_product_to_line(self, line_id: int | str, product: dict[str, Any]) -> Product | None:
        """Register a new product on a line. None on HTTP failure."""
        path = f"/api/production-lines/{line_id}/products"
        try:
            data = await self._request("POST", path, json=product)
        except ApiError:
            return None
        if data is None:
            return None
        return self._parse(Product, data, path)

    # --- Goals ---

    async def get_daily_targets(self) -> DailyTargets | None:
        """All daily goals for today; None if none were configured."""
        path = "/api/metas"
        data = await self._request("GET", path, allow_not_found=True)
        if data is None:
            return None
        return self._parse(DailyTargets, data, path)

    async def set_daily_production_goal(self, line_id: int | str, goal: Any) -> bool:
        """Set a line's goal for today.

        Raises:
            InvalidInputError: goal is not a positive integer (no request sent).
            ApiError: the backend rejected the goal.
        """
        value = validate_goal(goal)
        await self._request("POST", f"/api/metas/linha/{line_id}", json={"meta": value})
        logger.info("Daily goal for line %s set to %d", line_id, value)
        return True

    # --- Alerts ---

    async def get_alerts(self) -> list[Alert]:
        """Every alert the backend knows about, open or resolved."""
        path = "/api/alertas"
        data = await self._request("GET", path, allow_not_found=True)
        if not data:
            return []
        return [self._parse(Alert, item, path) for item in data]

    async def get_failure_records(self, now: datetime | None = None) -> list[FailureRecord]:
        """Alerts mapped to dashboard failure records."""
        alerts = await self.get_alerts()
        alert_settings = self.settings.alerts
        return [
            alert_to_failure(alert, alert_settings.open_status, alert_settings.severity, now)
            for alert in alerts
        ]

    async def create_alert(
        self,
        line_id: int | str,
        stage_id: int,
        description: str | None = None,
    ) -> Alert | None:
        """Open an alert on a line stage. None on HTTP failure."""
        body = {
            "linha_id": line_number(line_id),
            "etapa_id": validate_stage(stage_id),
            "descricao": description or f"Alerta manual na linha {line_id}",
        }
        try:
            data = await self._request("POST", "/api/alertas", json=body)
        except ApiError:
            return None
        if data is None:
            return None
        return self._parse(Alert, data, "/api/alertas")

    async def resolve_alert(self, line_id: int | str, stage_id: int) -> Alert | None:
        """Close the open alert on a line stage. None on HTTP failure."""
        path = f"/api/alertas/linhas/{line_id}/etapas/{stage_id}/resolver"
        try:
            data = await self._request("PATCH", path)
        except ApiError:
            return None
        if data is None:
            return None
        return self._parse(Alert, data, path)

    # --- Production events ---

    async def process_production_event(
        self,
        kind: str,
        stage_id: int,
        line_id: int | str,
    ) -> str | None:
        """Record a start/stop event on a stage.

        Returns:
            Identifier of the affected product, or None if the backend did
            not name one.
        """
        if kind not in EVENT_KINDS:
            raise InvalidInputError(f"Event kind must be one of {EVENT_KINDS}, got {kind!r}")
        stage = validate_stage(stage_id)
        body = {"tipo": kind, "etapa_id": stage, "linha_id": line_number(line_id)}
        data = await self._request("POST", "/api/eventos", json=body)
        return extract_product_id(data)

    # --- Scanner ---

    async def associate_serial_number(self, serial: str, line_id: int | str) -> Any:
        """Attach a scanned serial number to the line's product in progress."""
        serial = (serial or "").strip()
        if not serial:
            raise InvalidInputError("Enter a valid serial number")
        body = {"numero_serie": serial, "linha_id": line_number(line_id)}
        return await self._request("POST", f"/api/scanner/linhas/{line_id}/associar", json=body)
