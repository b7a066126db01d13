"""Pydantic v2 response schemas for the audit trail."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field

from billing_engine.models.enums import AuditOperation, EntityKind
from billing_engine.schemas.common import ApiModel


class RevisionResponse(ApiModel):
    revision: int
    entity_type: EntityKind = Field(..., alias="tipoEntidad")
    entity_id: uuid.UUID = Field(..., alias="entidadId")
    operation: AuditOperation = Field(..., alias="operacion")
    timestamp: datetime = Field(..., alias="fecha")
    snapshot: dict[str, Any] = Field(..., alias="datos")


class CambioCampo(ApiModel):
    field: str = Field(..., alias="campo")
    old_value: Any = Field(None, alias="valorAnterior")
    new_value: Any = Field(None, alias="valorNuevo")


class ComparacionRevisiones(ApiModel):
    entity_type: EntityKind = Field(..., alias="tipoEntidad")
    entity_id: uuid.UUID = Field(..., alias="entidadId")
    old_revision: int = Field(..., alias="revisionAnterior")
    new_revision: int = Field(..., alias="revisionActual")
    changes: list[CambioCampo] = Field(..., alias="cambios")


class EstadisticasAuditoria(ApiModel):
    total: int = Field(..., alias="totalRevisiones")
    by_entity: dict[str, int] = Field(..., alias="revisionesPorEntidad")
    by_operation: dict[str, int] = Field(..., alias="revisionesPorOperacion")
