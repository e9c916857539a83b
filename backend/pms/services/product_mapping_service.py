# Overview: CBS product name -> KPI category registry consulted by reconciliation.

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..kpi import category_from_display
from ..models import ProductKpiMapping
from ..models.mapping import PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_INACTIVE
from ..validation import NotFoundError, ValidationError, require_text, to_text
from .import_schemas import ProductMappingSchema
from . import audit_service


def _upsert(product_name: str, kpi_category: str, description: str | None, is_active: bool, actor_id: int | None):
    mapping = db.session.query(ProductKpiMapping).filter_by(product_name=product_name).first()
    created = mapping is None
    if created:
        mapping = ProductKpiMapping(product_name=product_name, created_by_id=actor_id)
        db.session.add(mapping)
    mapping.kpi_category = kpi_category
    if description is not None:
        mapping.description = description
    mapping.status = PRODUCT_STATUS_ACTIVE if is_active else PRODUCT_STATUS_INACTIVE
    db.session.flush()
    return mapping, created


def upsert_product_mapping(
    *,
    product_name: str,
    kpi_category: str,
    description: str | None = None,
    is_active: bool = True,
    actor_id: int | None = None,
) -> ProductKpiMapping:
    name = require_text(product_name, "product_name")
    category = category_from_display(kpi_category)
    mapping, created = _upsert(name, category, to_text(description), is_active, actor_id)
    audit_service.record_event(
        action=audit_service.ACTION_CREATE if created else audit_service.ACTION_UPDATE,
        entity_type="product_kpi_mapping",
        entity_id=mapping.id,
        entity_name=mapping.product_name,
        actor_id=actor_id,
        detail=f"{mapping.product_name} -> {mapping.kpi_category} ({mapping.status})",
    )
    db.session.commit()
    return mapping


def bulk_upsert(rows: list[dict[str, Any]], *, actor_id: int | None = None) -> dict:
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")
    schema = ProductMappingSchema()
    result = {"processed": len(rows), "created": 0, "updated": 0, "errors": []}
    for index, raw in enumerate(rows):
        if not isinstance(raw, dict):
            result["errors"].append({"row": index + 2, "errors": ["row must be an object"]})
            continue
        row, errors = schema.normalize_row(raw)
        if errors:
            result["errors"].append({"row": index + 2, "product_name": row.get("product_name"), "errors": errors})
            continue
        _, created = _upsert(row["product_name"], row["kpi_category"], row["description"], row["is_active"], actor_id)
        result["created" if created else "updated"] += 1

    audit_service.record_event(
        action=audit_service.ACTION_UPLOAD,
        entity_type="product_kpi_mapping",
        actor_id=actor_id,
        detail=f"Product mapping upload: {result['created']} created, {result['updated']} updated, {len(result['errors'])} errors",
    )
    db.session.commit()
    return result


def deactivate(mapping_id: int, *, actor_id: int | None = None) -> ProductKpiMapping:
    mapping = db.session.get(ProductKpiMapping, mapping_id)
    if not mapping:
        raise NotFoundError(f"Product mapping {mapping_id} not found")
    mapping.status = PRODUCT_STATUS_INACTIVE
    audit_service.record_event(
        action=audit_service.ACTION_DELETE,
        entity_type="product_kpi_mapping",
        entity_id=mapping.id,
        entity_name=mapping.product_name,
        actor_id=actor_id,
        detail=f"Deactivated product mapping {mapping.product_name}",
    )
    db.session.commit()
    return mapping


def list_product_mappings(*, status: str | None = None, kpi_category: str | None = None) -> list[ProductKpiMapping]:
    query = db.session.query(ProductKpiMapping)
    if status:
        query = query.filter(ProductKpiMapping.status == status.upper())
    if kpi_category:
        query = query.filter(ProductKpiMapping.kpi_category == category_from_display(kpi_category))
    return query.order_by(ProductKpiMapping.product_name).all()


def active_product_names() -> set[str]:
    rows = db.session.query(ProductKpiMapping.product_name).filter(
        ProductKpiMapping.status == PRODUCT_STATUS_ACTIVE
    ).all()
    return {name for (name,) in rows}
