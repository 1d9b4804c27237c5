"""Contract tests for ProductionAPI against a stub backend.

Tests cover:
- Paths, methods and request bodies of every endpoint
- 404 policy per endpoint (None / empty list / raise)
- HTTP and transport failures mapped to the error taxonomy
- Client-side validation (no request sent)
- Wire decoding of camelCase and snake_case payloads
"""

import asyncio
import json

import httpx
import pytest

from src.api_client import (
    ApiError,
    InvalidInputError,
    RequestTimeoutError,
    ResponseFormatError,
    TransportError,
    validate_goal,
)
from src.common.models import FailureStatus, LineStatus


def run(coro):
    return asyncio.run(coro)


def body_of(request: httpx.Request) -> dict:
    return json.loads(request.content)


async def call(make_api, method: str, *args, **kwargs):
    async with make_api() as api:
        return await getattr(api, method)(*args, **kwargs)


# === Reads ===


class TestLineAnalysis:
    def test_decodes_analysis(self, make_api, backend):
        analysis = run(call(make_api, "get_line_analysis", 1))
        assert analysis.completed_count == 127
        assert len(analysis.products) == 2
        assert analysis.products[0].serial_number == "1209F25A16806101"
        assert analysis.products[1].history[3].started_at is None
        assert backend.calls("GET", "/api/analise-tempo/linha/1/hoje")

    def test_not_found_is_none(self, make_api):
        assert run(call(make_api, "get_line_analysis", 9)) is None

    def test_server_error_raises(self, make_api, backend):
        backend.add("GET", "/api/analise-tempo/linha/1/hoje", {"message": "db down"}, status=500)
        with pytest.raises(ApiError) as exc_info:
            run(call(make_api, "get_line_analysis", 1))
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "db down"


class TestProductAnalysis:
    def test_decodes_analysis(self, make_api):
        record = run(call(make_api, "get_product_analysis", "1209F25A16806101"))
        assert record.product.serial_number == "1209F25A16806101"
        assert record.product.line_id == 1
        assert {s.stage_id for s in record.stages} == {1, 2}

    def test_unknown_product_is_none(self, make_api):
        assert run(call(make_api, "get_product_analysis", "unknown-id")) is None

    def test_other_failures_raise(self, make_api, backend):
        backend.add("GET", "/api/analise-tempo/produto/x", None, status=503)
        with pytest.raises(ApiError) as exc_info:
            run(call(make_api, "get_product_analysis", "x"))
        assert exc_info.value.message == "HTTP error! status: 503"


class TestDailyTargets:
    def test_decodes_targets(self, make_api):
        targets = run(call(make_api, "get_daily_targets"))
        assert targets.total_goal == 290
        assert targets.target_for(1) == 150
        assert targets.target_for("2") == 140
        assert targets.target_for(5) == 0

    def test_not_found_is_none(self, make_api, backend):
        del backend.routes[("GET", "/api/metas")]
        assert run(call(make_api, "get_daily_targets")) is None


class TestAlerts:
    def test_decodes_both_spellings(self, make_api):
        alerts = run(call(make_api, "get_alerts"))
        assert [a.line_id for a in alerts] == [1, 2]
        assert alerts[0].status == "resolvido"
        assert alerts[1].status == "aberto"
        assert alerts[1].finished_at is None

    def test_not_found_is_empty(self, make_api, backend):
        del backend.routes[("GET", "/api/alertas")]
        assert run(call(make_api, "get_alerts")) == []

    def test_failure_records_mapping(self, make_api, now):
        records = run(call(make_api, "get_failure_records", now=now))
        resolved, open_ = records
        assert resolved.status == FailureStatus.RESOLVED
        assert resolved.duration == 20 * 60_000
        assert open_.status == FailureStatus.OPEN
        assert open_.duration_at(now) == 60 * 60_000
        assert open_.line_id == "2"
        assert open_.stage == 1

    def test_malformed_payload(self, make_api, backend):
        backend.add("GET", "/api/alertas", [{"descricao": "no id"}])
        with pytest.raises(ResponseFormatError):
            run(call(make_api, "get_alerts"))


class TestLegacyEndpoints:
    def test_production_lines(self, make_api, backend):
        backend.add("GET", "/api/production-lines", [
            {"id": "line-1", "name": "Linha 1", "model": "20RT COMPACT BR",
             "currentProduction": 127, "targetProduction": 150, "status": "running",
             "efficiency": 85, "issues": [], "products": []},
        ])
        lines = run(call(make_api, "get_production_lines"))
        assert lines[0].current_production == 127
        assert lines[0].status == LineStatus.RUNNING

    def test_production_lines_not_found(self, make_api):
        assert run(call(make_api, "get_production_lines")) == []

    def test_production_metrics(self, make_api, backend):
        backend.add("GET", "/api/production-metrics", {
            "totalProduced": 332, "totalTarget": 410, "overallEfficiency": 81,
            "activeLines": 2, "totalIssues": 2, "averageCycleTime": 45.5,
        })
        metrics = run(call(make_api, "get_production_metrics"))
        assert metrics.total_produced == 332
        assert metrics.average_cycle_time == 45.5

    def test_production_metrics_failure_raises(self, make_api):
        with pytest.raises(ApiError):
            run(call(make_api, "get_production_metrics"))


# === Writes ===


class TestDailyGoal:
    def test_posts_goal(self, make_api, backend):
        backend.add("POST", "/api/metas/linha/1", {"linhaId": 1, "meta": 150}, status=201)
        assert run(call(make_api, "set_daily_production_goal", 1, 150)) is True
        (request,) = backend.calls("POST", "/api/metas/linha/1")
        assert body_of(request) == {"meta": 150}

    def test_numeric_string_accepted(self, make_api, backend):
        backend.add("POST", "/api/metas/linha/1", {})
        assert run(call(make_api, "set_daily_production_goal", "1", " 120 ")) is True
        assert body_of(backend.calls("POST", "/api/metas/linha/1")[0]) == {"meta": 120}

    @pytest.mark.parametrize("goal", [0, "0", "", "  ", -5, "abc", None, 2.5])
    def test_invalid_goal_sends_nothing(self, make_api, backend, goal):
        with pytest.raises(InvalidInputError):
            run(call(make_api, "set_daily_production_goal", "1", goal))
        assert backend.requests == []

    def test_backend_rejection_message(self, make_api, backend):
        backend.add("POST", "/api/metas/linha/1", {"message": "Linha inexistente"}, status=400)
        with pytest.raises(ApiError, match="Linha inexistente"):
            run(call(make_api, "set_daily_production_goal", 1, 10))

    def test_validate_goal(self):
        assert validate_goal("42") == 42
        assert validate_goal(7.0) == 7


class TestAlertWrites:
    def test_create_alert(self, make_api, backend):
        backend.add("POST", "/api/alertas", {
            "id": 3, "linha_id": 1, "etapa_id": 4, "descricao": "Alerta manual na linha 1",
            "inicio_alerta_ts": "2025-06-02T11:59:00Z", "status_alerta": "aberto",
        }, status=201)
        alert = run(call(make_api, "create_alert", 1, 4))
        assert alert.id == 3
        assert body_of(backend.calls("POST", "/api/alertas")[0]) == {
            "linha_id": 1, "etapa_id": 4, "descricao": "Alerta manual na linha 1",
        }

    def test_create_alert_http_failure_is_none(self, make_api, backend):
        backend.add("POST", "/api/alertas", {"message": "boom"}, status=500)
        assert run(call(make_api, "create_alert", 1, 4)) is None

    @pytest.mark.parametrize("stage", [0, 6, "x"])
    def test_create_alert_rejects_bad_stage(self, make_api, backend, stage):
        with pytest.raises(InvalidInputError):
            run(call(make_api, "create_alert", 1, stage))
        assert backend.calls("POST", "/api/alertas") == []

    def test_resolve_alert(self, make_api, backend):
        path = "/api/alertas/linhas/2/etapas/1/resolver"
        backend.add("PATCH", path, {
            "id": 2, "linhaId": 2, "etapaId": 1, "inicioAlertaTs": "2025-06-02T11:00:00Z",
            "fimAlertaTs": "2025-06-02T12:00:00Z", "statusAlerta": "resolvido",
        })
        alert = run(call(make_api, "resolve_alert", 2, 1))
        assert alert.finished_at is not None
        assert backend.calls("PATCH", path)

    def test_resolve_alert_not_found_is_none(self, make_api):
        assert run(call(make_api, "resolve_alert", 2, 5)) is None

    def test_transport_failure_still_raises(self, make_api, backend):
        backend.fail("POST", "/api/alertas")
        with pytest.raises(TransportError):
            run(call(make_api, "create_alert", 1, 4))


class TestProductionEvents:
    def test_start_event(self, make_api, backend):
        backend.add("POST", "/api/eventos", {"produtoId": 11, "etapaId": 3})
        assert run(call(make_api, "process_production_event", "start", 3, 1)) == "11"
        assert body_of(backend.calls("POST", "/api/eventos")[0]) == {
            "tipo": "start", "etapa_id": 3, "linha_id": 1,
        }

    def test_nested_product_id(self, make_api, backend):
        backend.add("POST", "/api/eventos", {"produto": {"id": 12}})
        assert run(call(make_api, "process_production_event", "stop", 5, 1)) == "12"

    def test_no_product_in_response(self, make_api, backend):
        backend.add("POST", "/api/eventos", {"ok": True})
        assert run(call(make_api, "process_production_event", "stop", 5, 1)) is None

    @pytest.mark.parametrize("kind,stage", [("pause", 1), ("start", 0), ("start", 6)])
    def test_invalid_event_sends_nothing(self, make_api, backend, kind, stage):
        with pytest.raises(InvalidInputError):
            run(call(make_api, "process_production_event", kind, stage, 1))
        assert backend.requests == []

    def test_rejection_raises(self, make_api, backend):
        backend.add("POST", "/api/eventos", {"message": "Etapa anterior não concluída"}, status=409)
        with pytest.raises(ApiError, match="Etapa anterior"):
            run(call(make_api, "process_production_event", "start", 3, 1))


class TestScanner:
    def test_associate(self, make_api, backend):
        path = "/api/scanner/linhas/1/associar"
        backend.add("POST", path, {"produtoId": 11, "nSerie": "1209F25A16806100"})
        result = run(call(make_api, "associate_serial_number", " 1209F25A16806100 ", 1))
        assert result["produtoId"] == 11
        assert body_of(backend.calls("POST", path)[0]) == {
            "numero_serie": "1209F25A16806100", "linha_id": 1,
        }

    def test_blank_serial_rejected(self, make_api, backend):
        with pytest.raises(InvalidInputError):
            run(call(make_api, "associate_serial_number", "   ", 1))
        assert backend.requests == []

    def test_no_product_in_progress(self, make_api, backend):
        backend.add("POST", "/api/scanner/linhas/1/associar",
                    {"message": "Nenhum produto em produção"}, status=404)
        with pytest.raises(ApiError) as exc_info:
            run(call(make_api, "associate_serial_number", "X1", 1))
        assert exc_info.value.is_not_found


class TestLineWrites:
    def test_update_line_status(self, make_api, backend):
        backend.add("PATCH", "/api/production-lines/1/status", None, status=204)
        assert run(call(make_api, "update_line_status", 1, "maintenance")) is True
        assert body_of(backend.calls("PATCH", "/api/production-lines/1/status")[0]) == {
            "status": "maintenance",
        }

    def test_update_line_status_failure(self, make_api):
        assert run(call(make_api, "update_line_status", 1, LineStatus.STOPPED)) is False

    def test_unknown_status_rejected(self, make_api, backend):
        with pytest.raises(InvalidInputError):
            run(call(make_api, "update_line_status", 1, "exploded"))
        assert backend.requests == []

    def test_add_product(self, make_api, backend):
        backend.add("POST", "/api/production-lines/1/products", {
            "id": "prod-9", "serialNumber": "SN9", "currentStage": 1, "nextStage": 2,
            "stageTimes": [1703151200000, 0, 0, 0, 0], "status": "in_production",
        }, status=201)
        product = run(call(make_api, "add_product_to_line", 1, {"serialNumber": "SN9"}))
        assert product.id == "prod-9"
        assert product.stage_times[0] == 1703151200000


# === Transport ===


class TestTransport:
    def test_connection_error(self, make_api, backend):
        backend.fail("GET", "/api/alertas")
        with pytest.raises(TransportError):
            run(call(make_api, "get_alerts"))

    def test_timeout(self, make_api, backend):
        backend.fail("GET", "/api/metas", exc_type=httpx.ReadTimeout)
        with pytest.raises(RequestTimeoutError):
            run(call(make_api, "get_daily_targets"))

    def test_invalid_json(self, make_api, backend):
        backend.add_handler("GET", "/api/metas",
                            lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(ResponseFormatError):
            run(call(make_api, "get_daily_targets"))

    def test_negative_goal_is_format_error(self, make_api, backend):
        backend.add("GET", "/api/metas", {"metas": [{"linhaId": 1, "meta": -5}]})
        with pytest.raises(ResponseFormatError):
            run(call(make_api, "get_daily_targets"))

    def test_negative_completed_count_is_format_error(self, make_api, backend):
        backend.add("GET", "/api/analise-tempo/linha/1/hoje", {"produtosConcluidos": -1})
        with pytest.raises(ResponseFormatError):
            run(call(make_api, "get_line_analysis", 1))

    @pytest.mark.parametrize("timeout", [0, -1])
    def test_non_positive_timeout_rejected(self, make_api, timeout):
        with pytest.raises(ValueError):
            make_api(timeout=timeout)

    def test_base_url_trailing_slash(self, make_api, backend):
        async def fetch():
            async with make_api(base_url="http://backend.test/") as api:
                return await api.get_alerts()

        run(fetch())
        assert str(backend.requests[0].url) == "http://backend.test/api/alertas"
