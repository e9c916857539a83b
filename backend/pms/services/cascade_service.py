# Overview: Plan cascade engine: splits a branch target into staff targets by position shares.

"""
Cascade rules

1. Resolve the share config: active branch-specific row for the category,
   else the active default row (ConfigurationMissing if neither).
2. Roster: active staff of the plan's branch holding Branch Manager, MSM,
   Accountant or an MSO tier.
3. Named positions get target x share / 100. When two people hold the same
   named position they split that position's share equally. Share 0 means
   no StaffPlan.
4. The MSO pool splits the MSO share (and the resulting target) equally.
5. Breakdowns divide the individual target by the period's
   (monthly, weekly, daily) divisors; yearly is the individual target.
6. Previous StaffPlans of the plan are deleted and the new set inserted in
   the caller's transaction. Nothing here commits.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..extensions import db
from ..kpi import BREAKDOWN_DIVISORS, parse_plan_period
from ..models import Plan, StaffPlan
from ..models.plans import STAFF_PLAN_STATUS_ACTIVE
from ..positions import Position
from ..validation import round2, round4
from . import org_service, plan_share_service


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def _named_shares(config) -> dict[str, Decimal]:
    return {
        Position.BRANCH_MANAGER: Decimal(config.branch_manager_share or 0),
        Position.MSM: Decimal(config.msm_share or 0),
        Position.ACCOUNTANT: Decimal(config.accountant_share or 0),
    }


def _build_staff_plan(plan: Plan, staff, target: Decimal, share: Decimal, divisors) -> StaffPlan:
    monthly, weekly, daily = divisors
    individual = round2(target)
    return StaffPlan(
        plan_id=plan.id,
        staff_id=staff.id,
        branch_code=plan.branch_code,
        position=staff.position,
        kpi_category=plan.kpi_category,
        period=plan.period,
        individual_target=individual,
        yearly_target=individual,
        monthly_target=round2(target / monthly),
        weekly_target=round2(target / weekly),
        daily_target=round2(target / daily),
        plan_share_percent=round4(share),
        status=STAFF_PLAN_STATUS_ACTIVE,
    )


def compute_allocations(plan: Plan) -> list[StaffPlan]:
    """
    Build (but do not persist) the StaffPlans the plan would cascade to.
    Ordered by staff id.
    """
    config = plan_share_service.resolve_config(plan.kpi_category, plan.branch_code)
    branch = org_service.get_branch_by_code(plan.branch_code)
    divisors = BREAKDOWN_DIVISORS[parse_plan_period(plan.period).period_type]
    target_value = Decimal(plan.target_value)

    roster = org_service.active_staff_in_branch(branch.id, Position.CASCADE_ELIGIBLE)
    produced: list[StaffPlan] = []

    for position, share in _named_shares(config).items():
        holders = [s for s in roster if s.position == position]
        if not holders or share <= 0:
            continue
        each_share = share / len(holders)
        each_target = target_value * share / HUNDRED / len(holders)
        for staff in holders:
            produced.append(_build_staff_plan(plan, staff, each_target, each_share, divisors))

    pool = [s for s in roster if s.position in Position.MSO_POOL]
    pool_share = Decimal(config.mso_share or 0)
    if pool and pool_share > 0:
        pool_target = target_value * pool_share / HUNDRED
        for staff in pool:
            produced.append(
                _build_staff_plan(plan, staff, pool_target / len(pool), pool_share / len(pool), divisors)
            )
    elif pool_share > 0:
        logger.info("Plan %s: MSO share %s%% unallocated, branch %s has no active MSO staff",
                    plan.id, pool_share, plan.branch_code)

    produced.sort(key=lambda sp: sp.staff_id)
    return produced


def cascade(plan: Plan) -> list[StaffPlan]:
    """
    Replace all StaffPlans of `plan` with a freshly computed set.

    Allocation is computed before anything is deleted, so a missing config
    leaves the previous StaffPlans untouched.
    """
    produced = compute_allocations(plan)

    db.session.query(StaffPlan).filter(StaffPlan.plan_id == plan.id).delete(synchronize_session=False)
    db.session.expire(plan, ["staff_plans"])
    db.session.add_all(produced)
    db.session.flush()

    logger.debug("Plan %s cascaded to %d staff plans", plan.id, len(produced))
    return produced
