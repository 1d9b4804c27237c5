"""Shared test fixtures for the production line monitor."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

# Ensure src is importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.api_client import ProductionAPI
from src.common.config import Settings, SyncSettings


NOW = datetime(2025, 6, 2, 12, 0, 0, tzinfo=timezone.utc)


class StubBackend:
    """In-process stand-in for the production backend.

    Routes map (method, path) to either a (status, json) pair or a callable
    taking the httpx.Request. Unknown routes answer 404. Every request is
    recorded for assertions.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], object] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, json=None, status: int = 200) -> None:
        self.routes[(method, path)] = (status, json)

    def add_handler(self, method: str, path: str, handler) -> None:
        self.routes[(method, path)] = handler

    def fail(self, method: str, path: str, exc_type=httpx.ConnectError) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc_type("backend unreachable", request=request)

        self.routes[(method, path)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(route):
            return route(request)
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


# === Sample backend payloads ===


@pytest.fixture
def alerts_payload() -> list[dict]:
    """One resolved alert (camelCase) and one open alert (snake_case)."""
    return [
        {
            "id": 1,
            "linhaId": 1,
            "etapaId": 2,
            "descricao": "Falha no sistema de refrigeração",
            "inicioAlertaTs": "2025-06-02T11:30:00Z",
            "fimAlertaTs": "2025-06-02T11:50:00Z",
            "statusAlerta": "resolvido",
        },
        {
            "id": 2,
            "linha_id": 2,
            "etapa_id": 1,
            "descricao": "Esteira travada",
            "inicio_alerta_ts": "2025-06-02T11:00:00Z",
            "fim_alerta_ts": None,
            "status_alerta": "aberto",
        },
    ]


@pytest.fixture
def targets_payload() -> dict:
    return {
        "data": "2025-06-02",
        "metaTotal": 290,
        "metas": [
            {"linhaId": 1, "meta": 150},
            {"linhaId": 2, "meta": 140},
        ],
    }


@pytest.fixture
def line1_analysis() -> dict:
    """Line 1: one finished product and one sitting in stage 3."""
    return {
        "produtosConcluidos": 127,
        "totalProdutosNaLinha": 2,
        "analiseProdutos": [
            {
                "produtoId": 10,
                "nSerie": "1209F25A16806101",
                "status": "concluido",
                "ocioTotal": "00:22:00",
                "historico": [
                    {"etapaId": 1, "nomeEtapa": "Montagem", "inicioTs": 1703142000000,
                     "fimTs": 1703144000000, "tempoDeOcio": None},
                    {"etapaId": 2, "nomeEtapa": "Solda", "inicioTs": 1703144100000,
                     "fimTs": 1703146000000, "tempoDeOcio": None},
                    {"etapaId": 3, "nomeEtapa": "Carga de gás", "inicioTs": 1703146200000,
                     "fimTs": 1703147500000, "tempoDeOcio": None},
                    {"etapaId": 4, "nomeEtapa": "Teste", "inicioTs": 1703147700000,
                     "fimTs": 1703148700000, "tempoDeOcio": None},
                    {"etapaId": 5, "nomeEtapa": "Embalagem", "inicioTs": 1703148780000,
                     "fimTs": 1703149000000, "tempoDeOcio": None},
                ],
            },
            {
                "produtoId": 11,
                "nSerie": "1209F25A16806100",
                "status": "em_producao",
                "ocioTotal": {"minutes": 15},
                "historico": [
                    {"etapaId": 1, "nomeEtapa": "Montagem", "inicioTs": 1703145600000,
                     "fimTs": 1703148000000, "tempoDeOcio": None},
                    {"etapaId": 2, "nomeEtapa": "Solda", "inicioTs": 1703148300000,
                     "fimTs": 1703150900000, "tempoDeOcio": None},
                    {"etapaId": 3, "nomeEtapa": "Carga de gás", "inicioTs": 1703150980000,
                     "fimTs": None, "tempoDeOcio": None},
                    {"etapaId": 4, "nomeEtapa": "Teste", "inicioTs": None,
                     "fimTs": None, "tempoDeOcio": None},
                    {"etapaId": 5, "nomeEtapa": "Embalagem", "inicioTs": None,
                     "fimTs": None, "tempoDeOcio": None},
                ],
            },
        ],
    }


@pytest.fixture
def line2_analysis() -> dict:
    return {"produtosConcluidos": 110, "totalProdutosNaLinha": 0, "analiseProdutos": []}


@pytest.fixture
def product_analysis_payload() -> dict:
    return {
        "produto": {
            "id": 10,
            "nSerie": "1209F25A16806101",
            "linhaId": 1,
            "statusGeral": "concluido",
        },
        "analisePorEtapa": [
            {"etapaId": 2, "nomeEtapa": "Solda", "inicioEtapa": "2025-06-02T08:35:00Z",
             "fimEtapa": "2025-06-02T09:05:00Z", "duracaoEtapa": None,
             "tempoDeOcio": {"minutes": 2}},
            {"etapaId": 1, "nomeEtapa": "Montagem", "inicioEtapa": "2025-06-02T08:00:00Z",
             "fimEtapa": "2025-06-02T08:30:00Z", "duracaoEtapa": {"minutes": 30},
             "tempoDeOcio": {"minutes": 5}},
        ],
        "ocioTotal": None,
    }


# === Backend and settings ===


@pytest.fixture
def test_settings() -> Settings:
    """Default settings limited to two lines, independent of env and YAML."""
    return Settings(sync=SyncSettings(line_ids=[1, 2], poll_interval_seconds=0.01))


@pytest.fixture
def backend(alerts_payload, targets_payload, line1_analysis, line2_analysis,
            product_analysis_payload) -> StubBackend:
    """Stub backend serving a consistent two-line plant."""
    stub = StubBackend()
    stub.add("GET", "/api/alertas", alerts_payload)
    stub.add("GET", "/api/metas", targets_payload)
    stub.add("GET", "/api/analise-tempo/linha/1/hoje", line1_analysis)
    stub.add("GET", "/api/analise-tempo/linha/2/hoje", line2_analysis)
    stub.add("GET", "/api/analise-tempo/produto/1209F25A16806101", product_analysis_payload)
    return stub


@pytest.fixture
def make_api(backend, test_settings):
    """Factory for a ProductionAPI wired to the stub backend."""

    def factory(**kwargs) -> ProductionAPI:
        kwargs.setdefault("base_url", "http://backend.test")
        kwargs.setdefault("settings", test_settings)
        return ProductionAPI(transport=backend.transport, **kwargs)

    return factory


@pytest.fixture
def now() -> datetime:
    """Fixed wall-clock time for derivation tests."""
    return NOW
