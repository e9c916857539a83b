# Overview: Branch position and hierarchy role codes with display-label mapping.

"""
Staff carry two independent labels:

- position: the seat held inside a branch (Branch Manager, MSM, ...). Drives
  plan cascade shares and task approval chains.
- role: the level in the branch -> area -> region -> HQ hierarchy. Drives
  behavioral evaluation routing and API access.

Only the uppercase codes below are stored or compared. Free-form display
strings coming from uploads and clients go through from_display() at the
boundary; to_display() renders them back.
"""

from __future__ import annotations

import re

from .validation import ValidationError


class Position:
    BRANCH_MANAGER = "BRANCH_MANAGER"
    MSM = "MSM"
    ACCOUNTANT = "ACCOUNTANT"
    AUDITOR = "AUDITOR"
    MSO_I = "MSO_I"
    MSO_II = "MSO_II"
    MSO_III = "MSO_III"

    ALL = (BRANCH_MANAGER, MSM, ACCOUNTANT, AUDITOR, MSO_I, MSO_II, MSO_III)
    MSO_POOL = (MSO_I, MSO_II, MSO_III)
    NAMED = (BRANCH_MANAGER, MSM, ACCOUNTANT)
    CASCADE_ELIGIBLE = NAMED + MSO_POOL
    TASK_SUBMITTERS = MSO_POOL + (ACCOUNTANT, AUDITOR)

    LABELS = {
        BRANCH_MANAGER: "Branch Manager",
        MSM: "MSM",
        ACCOUNTANT: "Accountant",
        AUDITOR: "Auditor",
        MSO_I: "MSO I",
        MSO_II: "MSO II",
        MSO_III: "MSO III",
    }


class Role:
    ADMIN = "ADMIN"
    REGIONAL_DIRECTOR = "REGIONAL_DIRECTOR"
    AREA_MANAGER = "AREA_MANAGER"
    BRANCH_MANAGER = "BRANCH_MANAGER"
    LINE_MANAGER = "LINE_MANAGER"
    SUB_TEAM_LEADER = "SUB_TEAM_LEADER"
    STAFF = "STAFF"

    ALL = (ADMIN, REGIONAL_DIRECTOR, AREA_MANAGER, BRANCH_MANAGER, LINE_MANAGER, SUB_TEAM_LEADER, STAFF)
    MANAGEMENT = (ADMIN, REGIONAL_DIRECTOR, AREA_MANAGER, BRANCH_MANAGER)
    # roles not bound to a single branch
    NETWORK = (ADMIN, REGIONAL_DIRECTOR, AREA_MANAGER)
    SUPERVISORS = (ADMIN, REGIONAL_DIRECTOR, AREA_MANAGER, BRANCH_MANAGER, LINE_MANAGER, SUB_TEAM_LEADER)

    LABELS = {
        ADMIN: "Admin",
        REGIONAL_DIRECTOR: "Regional Director",
        AREA_MANAGER: "Area Manager",
        BRANCH_MANAGER: "Branch Manager",
        LINE_MANAGER: "Line Manager",
        SUB_TEAM_LEADER: "Sub-Team Leader",
        STAFF: "Staff",
    }


def _squash(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


_ROMAN = {"1": "i", "2": "ii", "3": "iii"}


def _position_aliases() -> dict[str, str]:
    aliases = {_squash(code): code for code in Position.ALL}
    aliases.update({_squash(label): code for code, label in Position.LABELS.items()})
    aliases.update({
        "bm": Position.BRANCH_MANAGER,
        "manager": Position.BRANCH_MANAGER,
        "linemanager": Position.MSM,
        "membershipservicemanager": Position.MSM,
        "memberservicemanager": Position.MSM,
        "acc": Position.ACCOUNTANT,
        "branchaccountant": Position.ACCOUNTANT,
        "internalauditor": Position.AUDITOR,
    })
    for digit, roman in _ROMAN.items():
        code = f"MSO_{roman.upper()}"
        for prefix in ("mso", "memberserviceofficer", "membershipserviceofficer"):
            aliases[f"{prefix}{roman}"] = code
            aliases[f"{prefix}{digit}"] = code
    return aliases


def _role_aliases() -> dict[str, str]:
    aliases = {_squash(code): code for code in Role.ALL}
    aliases.update({_squash(label): code for code, label in Role.LABELS.items()})
    aliases.update({
        "administrator": Role.ADMIN,
        "regionaldirector": Role.REGIONAL_DIRECTOR,
        "areamanager": Role.AREA_MANAGER,
        "subteamleader": Role.SUB_TEAM_LEADER,
        "teamleader": Role.SUB_TEAM_LEADER,
        "msm": Role.LINE_MANAGER,
        "employee": Role.STAFF,
    })
    return aliases


_POSITION_ALIASES = _position_aliases()
_ROLE_ALIASES = _role_aliases()


def position_from_display(value: str | None) -> str:
    """Map any accepted spelling ("Member Service Officer II", "mso_2", ...) to a Position code."""
    if value is None or not str(value).strip():
        raise ValidationError("position is required")
    code = _POSITION_ALIASES.get(_squash(str(value)))
    if code is None:
        raise ValidationError(f"Unknown position: {value}")
    return code


def position_to_display(code: str | None) -> str | None:
    if code is None:
        return None
    return Position.LABELS.get(code, code)


def role_from_display(value: str | None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError("role is required")
    code = _ROLE_ALIASES.get(_squash(str(value)))
    if code is None:
        raise ValidationError(f"Unknown role: {value}")
    return code


def role_to_display(code: str | None) -> str | None:
    if code is None:
        return None
    return Role.LABELS.get(code, code)


def is_mso(position: str | None) -> bool:
    return position in Position.MSO_POOL
