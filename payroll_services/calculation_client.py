"""
HTTP client for the remote novelty calculation service.

Request body (JSON)::

    {"type": "horas_extra", "subtype": "diurnas", "baseSalary": 3000000,
     "hours": 2, "effectiveDate": "2025-08-01"}

Reply body::

    {"value": 31250, "calculationTrace": "..."}

Every failure (timeout, transport error, non-2xx status, unparseable or
incomplete reply) is raised as ``CalculationServiceError``.  Deciding
whether to fall back to the local calculator is the caller's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from payroll_kernel.exceptions import CalculationServiceError
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.calculation_client")

CALCULATE_PATH = "/novedades/calcular"


@dataclass(frozen=True)
class CalculationRequest:
    novelty_type: str
    base_salary: Decimal
    effective_date: date
    subtype: str | None = None
    days: int | None = None
    hours: Decimal | None = None
    manual_value: Decimal | None = None

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "type": self.novelty_type,
            "baseSalary": _wire_number(self.base_salary),
            "effectiveDate": self.effective_date.isoformat(),
        }
        if self.subtype:
            body["subtype"] = self.subtype
        if self.days is not None:
            body["days"] = self.days
        if self.hours is not None:
            body["hours"] = _wire_number(self.hours)
        if self.manual_value is not None:
            body["manualValue"] = _wire_number(self.manual_value)
        return body


@dataclass(frozen=True)
class CalculationReply:
    value: Decimal
    calculation_trace: str


def _wire_number(value: Decimal) -> int | float:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class CalculationServiceClient:
    """Async client for ``POST {base_url}/novedades/calcular``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def calculate(self, request: CalculationRequest) -> CalculationReply:
        """
        Ask the service to value one novelty.

        Raises:
            CalculationServiceError: On timeout, transport failure,
                non-2xx status or a malformed reply.
        """
        url = f"{self._base_url}{CALCULATE_PATH}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(url, json=request.to_json())
        except httpx.TimeoutException:
            logger.warning(
                "calculation_service_timeout",
                extra={"novelty_type": request.novelty_type, "url": url},
            )
            raise CalculationServiceError(f"timeout after {self._timeout}s") from None
        except httpx.HTTPError as exc:
            logger.warning(
                "calculation_service_transport_error",
                extra={
                    "novelty_type": request.novelty_type,
                    "url": url,
                    "error": str(exc),
                },
            )
            raise CalculationServiceError(f"transport error: {exc}") from exc

        if not response.is_success:
            logger.warning(
                "calculation_service_bad_status",
                extra={
                    "novelty_type": request.novelty_type,
                    "status_code": response.status_code,
                },
            )
            raise CalculationServiceError(
                f"HTTP {response.status_code}", status_code=response.status_code
            )

        reply = self._parse(response)
        logger.debug(
            "calculation_service_replied",
            extra={"novelty_type": request.novelty_type, "value": str(reply.value)},
        )
        return reply

    @staticmethod
    def _parse(response: httpx.Response) -> CalculationReply:
        try:
            body = response.json()
        except ValueError:
            raise CalculationServiceError(
                "reply is not JSON", status_code=response.status_code
            ) from None
        if not isinstance(body, dict) or "value" not in body:
            raise CalculationServiceError(
                "reply has no value", status_code=response.status_code
            )
        raw = body["value"]
        if isinstance(raw, bool) or raw is None:
            raise CalculationServiceError(
                f"reply value is not a number: {raw!r}", status_code=response.status_code
            )
        try:
            value = Decimal(str(raw))
        except InvalidOperation:
            raise CalculationServiceError(
                f"reply value is not a number: {raw!r}", status_code=response.status_code
            ) from None
        if not value.is_finite() or value < 0:
            raise CalculationServiceError(
                f"reply value out of range: {raw!r}", status_code=response.status_code
            )
        trace = body.get("calculationTrace")
        return CalculationReply(value=value, calculation_trace=str(trace or ""))
