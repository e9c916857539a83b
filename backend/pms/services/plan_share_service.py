# Overview: Plan share configuration: per-position percentage splits with branch-over-default precedence.

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any

from ..extensions import db
from ..kpi import SHARE_TOTAL_LIMIT, KpiCategory, category_from_display
from ..models import PlanShareConfig
from ..validation import (
    ConfigurationMissing,
    ConflictError,
    NotFoundError,
    ValidationError,
    round4,
    to_decimal,
    to_text,
)
from . import audit_service


SHARE_FIELDS = {
    "branch_manager": "branch_manager_share",
    "msm": "msm_share",
    "accountant": "accountant_share",
    "mso": "mso_share",
}

_SHARE_ALIASES = {
    "branchmanager": "branch_manager",
    "bm": "branch_manager",
    "msm": "msm",
    "linemanager": "msm",
    "accountant": "accountant",
    "mso": "mso",
    "msopool": "mso",
}


def normalize_shares(raw: Any) -> dict[str, Decimal]:
    """
    Map a planShares object ({"Branch Manager": 20, "MSM": 15, ...}) to the
    canonical share keys. Every value must lie in [0, 100].
    """
    if not isinstance(raw, dict):
        raise ValidationError("plan_shares must be an object")
    shares: dict[str, Decimal] = {}
    for key, value in raw.items():
        canonical = _SHARE_ALIASES.get(re.sub(r"[^a-z0-9]", "", str(key).lower()))
        if canonical is None:
            raise ValidationError(f"Unknown share position: {key}")
        share = to_decimal(value, f"share for {key}") or Decimal("0")
        if share < 0 or share > SHARE_TOTAL_LIMIT:
            raise ValidationError(f"share for {key} must be between 0 and 100")
        shares[canonical] = round4(share)
    return shares


def _apply_shares(config: PlanShareConfig, shares: dict[str, Decimal]) -> None:
    for key, column in SHARE_FIELDS.items():
        if key in shares:
            setattr(config, column, shares[key])
    total = sum((Decimal(getattr(config, column) or 0) for column in SHARE_FIELDS.values()), Decimal("0"))
    if total <= 0:
        raise ValidationError("Plan shares must total more than 0%")
    if total > SHARE_TOTAL_LIMIT:
        raise ValidationError(f"Plan shares total {total}% exceeds 100%")
    config.total_percent = round4(total)


def _normalize_branch(branch_code: Any) -> str | None:
    code = to_text(branch_code)
    return code.upper() if code else None


def _active_config(kpi_category: str, branch_code: str | None) -> PlanShareConfig | None:
    query = db.session.query(PlanShareConfig).filter(
        PlanShareConfig.kpi_category == kpi_category,
        PlanShareConfig.is_active.is_(True),
    )
    if branch_code is None:
        query = query.filter(PlanShareConfig.branch_code.is_(None))
    else:
        query = query.filter(PlanShareConfig.branch_code == branch_code)
    return query.order_by(PlanShareConfig.id.desc()).first()


def create_config(
    *,
    kpi_category: str,
    plan_shares: dict,
    branch_code: str | None = None,
    actor_id: int | None = None,
) -> PlanShareConfig:
    """Create the active config for (branch or default, category). One active config per key."""
    category = category_from_display(kpi_category)
    branch = _normalize_branch(branch_code)
    shares = normalize_shares(plan_shares)

    if _active_config(category, branch) is not None:
        scope = branch or "default"
        raise ConflictError(f"An active {KpiCategory.LABELS[category]} share config already exists for {scope}")

    config = PlanShareConfig(kpi_category=category, branch_code=branch, is_active=True, created_by_id=actor_id)
    _apply_shares(config, shares)
    db.session.add(config)
    db.session.flush()

    audit_service.record_event(
        action=audit_service.ACTION_CREATE,
        entity_type="plan_share_config",
        entity_id=config.id,
        entity_name=f"{branch or 'DEFAULT'}:{category}",
        actor_id=actor_id,
        detail=f"Share config {config.total_percent}% for {category} ({branch or 'default'})",
        payload={k: float(v) for k, v in config.shares().items()},
    )
    db.session.commit()
    return config


def update_config(config_id: int, *, plan_shares: dict, actor_id: int | None = None) -> PlanShareConfig:
    """Merge new share values into an existing config; unspecified positions keep theirs."""
    config = get_config(config_id)
    if not config.is_active:
        raise ValidationError("Cannot update an inactive share config")
    _apply_shares(config, normalize_shares(plan_shares))

    audit_service.record_event(
        action=audit_service.ACTION_UPDATE,
        entity_type="plan_share_config",
        entity_id=config.id,
        entity_name=f"{config.branch_code or 'DEFAULT'}:{config.kpi_category}",
        actor_id=actor_id,
        detail=f"Share config updated, total {config.total_percent}%",
        payload={k: float(v) for k, v in config.shares().items()},
    )
    db.session.commit()
    return config


def deactivate_config(config_id: int, *, actor_id: int | None = None) -> PlanShareConfig:
    config = get_config(config_id)
    config.is_active = False
    audit_service.record_event(
        action=audit_service.ACTION_DELETE,
        entity_type="plan_share_config",
        entity_id=config.id,
        entity_name=f"{config.branch_code or 'DEFAULT'}:{config.kpi_category}",
        actor_id=actor_id,
        detail="Share config deactivated",
    )
    db.session.commit()
    return config


def get_config(config_id: int) -> PlanShareConfig:
    config = db.session.get(PlanShareConfig, config_id)
    if not config:
        raise NotFoundError(f"Plan share config {config_id} not found")
    return config


def list_configs(
    *,
    kpi_category: str | None = None,
    branch_code: str | None = None,
    include_inactive: bool = False,
) -> list[PlanShareConfig]:
    query = db.session.query(PlanShareConfig)
    if kpi_category:
        query = query.filter(PlanShareConfig.kpi_category == category_from_display(kpi_category))
    if branch_code:
        query = query.filter(PlanShareConfig.branch_code == branch_code.upper())
    if not include_inactive:
        query = query.filter(PlanShareConfig.is_active.is_(True))
    return query.order_by(PlanShareConfig.kpi_category, PlanShareConfig.branch_code, PlanShareConfig.id).all()


def resolve_config(kpi_category: str, branch_code: str) -> PlanShareConfig:
    """Branch-specific active config, else the default one; ConfigurationMissing if neither."""
    config = _active_config(kpi_category, _normalize_branch(branch_code))
    if config is None:
        config = _active_config(kpi_category, None)
    if config is None:
        raise ConfigurationMissing(
            f"No plan share configuration for {KpiCategory.LABELS.get(kpi_category, kpi_category)} "
            f"in branch {branch_code} and no default configuration"
        )
    return config
