"""Wire models for the production backend.

The backend has shipped both camelCase (``linhaId``, ``inicioAlertaTs``) and
snake_case (``linha_id``, ``inicio_alerta_ts``) payloads; every field accepts
either spelling. Timestamps may be ISO-8601 strings or epoch milliseconds.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from src.common.timeutils import parse_timestamp

Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]


def wire(camel: str, snake: str, default: Any = ..., **kwargs: Any) -> Any:
    """Field readable from either backend spelling."""
    aliases = AliasChoices(camel, snake)
    if "default_factory" in kwargs:
        return Field(validation_alias=aliases, **kwargs)
    return Field(default, validation_alias=aliases, **kwargs)


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# === Per-line analysis: GET /api/analise-tempo/linha/{id}/hoje ===

class StageHistory(WireModel):
    """One stage entry in a product's history."""
    stage_id: int = wire("etapaId", "etapa_id")
    stage_name: str = wire("nomeEtapa", "nome_etapa", "")
    started_at: Timestamp = wire("inicioTs", "inicio_ts", None)
    finished_at: Timestamp = wire("fimTs", "fim_ts", None)
    idle_time: Any = wire("tempoDeOcio", "tempo_de_ocio", None)


class LineProduct(WireModel):
    product_id: int | str = wire("produtoId", "produto_id")
    serial_number: str | None = wire("nSerie", "n_serie", None)
    status: str | None = None
    total_idle: Any = wire("ocioTotal", "ocio_total", None)
    history: list[StageHistory] = wire("historico", "historico", default_factory=list)


class LineAnalysis(WireModel):
    """Today's production analysis for one line."""
    completed_count: int = wire("produtosConcluidos", "produtos_concluidos", 0, ge=0)
    products_on_line: int = wire("totalProdutosNaLinha", "total_produtos_na_linha", 0, ge=0)
    products: list[LineProduct] = wire(
        "analiseProdutos", "analise_produtos", default_factory=list
    )


# === Alerts: /api/alertas ===

class Alert(WireModel):
    id: int | str
    line_id: int | str = wire("linhaId", "linha_id")
    stage_id: int | None = wire("etapaId", "etapa_id", None)
    description: str | None = wire("descricao", "descricao", "")
    started_at: Timestamp = wire("inicioAlertaTs", "inicio_alerta_ts", None)
    finished_at: Timestamp = wire("fimAlertaTs", "fim_alerta_ts", None)
    status: str | None = wire("statusAlerta", "status_alerta", None)


# === Daily targets: GET /api/metas ===

class LineGoal(WireModel):
    line_id: int | str = wire("linhaId", "linha_id")
    goal: int = wire("meta", "meta", 0, ge=0)


class DailyTargets(WireModel):
    date: str | None = wire("data", "data", None)
    total_goal: int = wire("metaTotal", "meta_total", 0, ge=0)
    goals: list[LineGoal] = wire("metas", "metas", default_factory=list)

    def target_for(self, line_id: int | str) -> int:
        """Goal configured for a line today, 0 when none was set."""
        key = str(line_id)
        for entry in self.goals:
            if str(entry.line_id) == key:
                return entry.goal
        return 0


# === Product analysis: GET /api/analise-tempo/produto/{id} ===

class ProductSummary(WireModel):
    id: int | str
    serial_number: str | None = wire("nSerie", "n_serie", None)
    line_id: int | str | None = wire("linhaId", "linha_id", None)
    overall_status: str | None = wire("statusGeral", "status_geral", None)


class StageAnalysis(WireModel):
    stage_id: int = wire("etapaId", "etapa_id")
    stage_name: str = wire("nomeEtapa", "nome_etapa", "")
    started_at: Timestamp = wire("inicioEtapa", "inicio_etapa", None)
    finished_at: Timestamp = wire("fimEtapa", "fim_etapa", None)
    duration: Any = wire("duracaoEtapa", "duracao_etapa", None)
    idle_time: Any = wire("tempoDeOcio", "tempo_de_ocio", None)


class ProductAnalysisRecord(WireModel):
    product: ProductSummary = wire("produto", "produto")
    stages: list[StageAnalysis] = wire(
        "analisePorEtapa", "analise_por_etapa", default_factory=list
    )
    total_idle: Any = wire("ocioTotal", "ocio_total", None)
