"""
Tests for the calculation service client and the novelty valuator.

The remote service is replaced with ``httpx.MockTransport``; no socket
is ever opened.

Verifies:
- Request body field names and number encoding
- Successful replies parsed to Decimal with their trace
- Timeouts, transport errors, non-2xx statuses and malformed replies all
  surface as CalculationServiceError
- Types with a LOCAL fallback are valued locally when the service fails
- Types without one raise CalculationUnavailableError
- Manual types never reach the service
"""

import asyncio
import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest

from payroll_kernel.domain.drafts import build_draft
from payroll_kernel.exceptions import (
    CalculationServiceError,
    CalculationUnavailableError,
    InvalidSalaryError,
)
from payroll_services.calculation_client import (
    CALCULATE_PATH,
    CalculationRequest,
    CalculationServiceClient,
)
from payroll_services.valuation import LOCAL_FALLBACK_MARK, NoveltyValuator

BASE_URL = "http://calculo.test"
SALARY_220 = Decimal("2200000")


class RecordingTransport:
    """MockTransport wrapper that keeps every request it served."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


def _reply(value, trace="remote trace", status=200):
    return lambda request: httpx.Response(
        status, json={"value": value, "calculationTrace": trace}
    )


def _client(handler) -> tuple[CalculationServiceClient, RecordingTransport]:
    recorder = RecordingTransport(handler)
    return CalculationServiceClient(BASE_URL, timeout=0.5, transport=recorder.transport), recorder


def _overtime_request() -> CalculationRequest:
    return CalculationRequest(
        novelty_type="horas_extra",
        subtype="diurnas",
        base_salary=SALARY_220,
        effective_date=date(2025, 8, 1),
        hours=Decimal("1.5"),
    )


class TestRequestBody:
    def test_field_names(self):
        body = _overtime_request().to_json()
        assert body == {
            "type": "horas_extra",
            "subtype": "diurnas",
            "baseSalary": 2200000,
            "effectiveDate": "2025-08-01",
            "hours": 1.5,
        }

    def test_optional_fields_omitted(self):
        body = CalculationRequest(
            novelty_type="retencion_fuente",
            base_salary=Decimal("9000000"),
            effective_date=date(2025, 8, 1),
            manual_value=Decimal("120000"),
        ).to_json()
        assert "subtype" not in body
        assert "days" not in body
        assert "hours" not in body
        assert body["manualValue"] == 120000


class TestClient:
    def test_success(self):
        client, recorder = _client(_reply(31250, "2h x 12500"))
        reply = asyncio.run(client.calculate(_overtime_request()))

        assert reply.value == Decimal("31250")
        assert reply.calculation_trace == "2h x 12500"
        [request] = recorder.requests
        assert request.method == "POST"
        assert str(request.url) == BASE_URL + CALCULATE_PATH
        assert recorder.bodies[0]["type"] == "horas_extra"

    def test_fractional_value_kept_exact(self):
        client, _ = _client(_reply("23913.04"))
        reply = asyncio.run(client.calculate(_overtime_request()))
        assert reply.value == Decimal("23913.04")

    def test_trailing_slash_in_base_url(self):
        recorder = RecordingTransport(_reply(1))
        client = CalculationServiceClient(BASE_URL + "/", transport=recorder.transport)
        asyncio.run(client.calculate(_overtime_request()))
        assert str(recorder.requests[0].url) == BASE_URL + CALCULATE_PATH

    def test_bad_status(self, captured_logs):
        client, _ = _client(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(CalculationServiceError) as exc_info:
            asyncio.run(client.calculate(_overtime_request()))
        assert exc_info.value.status_code == 503
        assert exc_info.value.reason == "HTTP 503"
        assert any(r["message"] == "calculation_service_bad_status" for r in captured_logs())

    def test_timeout(self):
        def _slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client, _ = _client(_slow)
        with pytest.raises(CalculationServiceError) as exc_info:
            asyncio.run(client.calculate(_overtime_request()))
        assert exc_info.value.reason == "timeout after 0.5s"
        assert exc_info.value.code == "CALCULATION_SERVICE_ERROR"

    def test_transport_error(self):
        def _refused(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = _client(_refused)
        with pytest.raises(CalculationServiceError, match="transport error"):
            asyncio.run(client.calculate(_overtime_request()))

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>oops</html>"),
            httpx.Response(200, json=["value", 1]),
            httpx.Response(200, json={"calculationTrace": "no value"}),
            httpx.Response(200, json={"value": None}),
            httpx.Response(200, json={"value": True}),
            httpx.Response(200, json={"value": "mucho"}),
            httpx.Response(200, json={"value": -10}),
        ],
        ids=["html", "list", "missing", "null", "bool", "text", "negative"],
    )
    def test_malformed_reply(self, response):
        client, _ = _client(lambda request: response)
        with pytest.raises(CalculationServiceError):
            asyncio.run(client.calculate(_overtime_request()))


def _draft(novelty_type, subtype=None, **quantities):
    return build_draft(
        employee_id=uuid4(),
        period_id=uuid4(),
        novelty_type=novelty_type,
        subtype=subtype,
        **quantities,
    )


def _failing(request):
    return httpx.Response(500)


class TestValuator:
    def test_remote_value_used(self, calculator):
        client, recorder = _client(_reply(30000, "remote: 2h"))
        valuator = NoveltyValuator(calculator, client)

        result = asyncio.run(
            valuator.value(
                _draft("horas_extra", "diurnas", hours=2), SALARY_220, date(2025, 8, 1)
            )
        )

        assert result.value == Decimal("30000")
        assert result.calculation_trace == "remote: 2h"
        assert not result.is_local_fallback
        assert recorder.bodies[0]["hours"] == 2

    def test_local_fallback_for_surcharges_and_overtime(self, calculator, captured_logs):
        client, _ = _client(_failing)
        valuator = NoveltyValuator(calculator, client)

        result = asyncio.run(
            valuator.value(
                _draft("horas_extra", "diurnas", hours=2), SALARY_220, date(2025, 8, 1)
            )
        )

        assert result.value == Decimal("25000")
        assert result.is_local_fallback
        assert result.calculation_trace.startswith(f"{LOCAL_FALLBACK_MARK}(HTTP 500) ")
        fallback = [r for r in captured_logs() if r["message"] == "calculation_fallback_local"]
        assert fallback[0]["level"] == "WARNING"

    def test_disability_has_no_fallback(self, calculator, captured_logs):
        client, _ = _client(_failing)
        valuator = NoveltyValuator(calculator, client)

        with pytest.raises(CalculationUnavailableError) as exc_info:
            asyncio.run(
                valuator.value(
                    _draft("incapacidad", "general", days=4),
                    Decimal("3000000"),
                    date(2025, 8, 1),
                )
            )
        assert exc_info.value.novelty_type == "incapacidad"
        assert exc_info.value.reason == "HTTP 500"
        assert any(r["message"] == "calculation_unavailable" for r in captured_logs())

    def test_withholding_has_no_fallback(self, calculator):
        client, _ = _client(_failing)
        valuator = NoveltyValuator(calculator, client)
        with pytest.raises(CalculationUnavailableError):
            asyncio.run(
                valuator.value(
                    _draft("retencion_fuente"), Decimal("9000000"), date(2025, 8, 1)
                )
            )

    def test_local_only_without_service(self, calculator):
        valuator = NoveltyValuator(calculator)
        assert not valuator.has_remote

        result = asyncio.run(
            valuator.value(
                _draft("incapacidad", "general", days=4), Decimal("3000000"), date(2025, 8, 1)
            )
        )
        assert result.value == Decimal("66700")
        assert not result.is_local_fallback

    def test_no_service_and_no_formula(self, calculator):
        valuator = NoveltyValuator(calculator)
        with pytest.raises(CalculationUnavailableError, match="no local formula"):
            asyncio.run(
                valuator.value(
                    _draft("fondo_solidaridad"), Decimal("9000000"), date(2025, 8, 1)
                )
            )

    def test_manual_type_skips_the_service(self, calculator):
        client, recorder = _client(_reply(1))
        valuator = NoveltyValuator(calculator, client)

        result = asyncio.run(
            valuator.value(
                _draft("bonificacion", "ventas", value="150000"), None, date(2025, 8, 1)
            )
        )

        assert result.value == Decimal("150000")
        assert "manual" in result.calculation_trace
        assert recorder.requests == []

    def test_salary_checked_before_network(self, calculator):
        client, recorder = _client(_reply(1))
        valuator = NoveltyValuator(calculator, client)
        with pytest.raises(InvalidSalaryError):
            asyncio.run(
                valuator.value(
                    _draft("horas_extra", "diurnas", hours=2), Decimal("0"), date(2025, 8, 1)
                )
            )
        assert recorder.requests == []
