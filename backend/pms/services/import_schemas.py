from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Any

from ..kpi import category_from_display, parse_plan_period
from ..validation import ValidationError, to_bool, to_decimal, to_text
from pms.time_utils import parse_date


def _squash(key: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(key).lower())


def pick(raw_row: dict[str, Any], *aliases: str) -> Any:
    """
    First non-empty value under any of the header aliases.

    Header matching ignores case, spaces, dashes and underscores, so
    "Account Number", "account_number" and "accountNumber" are one column.
    """
    squashed = {_squash(k): v for k, v in raw_row.items() if k is not None}
    for alias in aliases:
        value = squashed.get(_squash(alias))
        if value is not None and value != "":
            return value
    return None


def _decimal_or_error(value: Any, field: str, errors: list[str]) -> Decimal | None:
    try:
        return to_decimal(value, field)
    except ValidationError as e:
        errors.append(str(e))
        return None


def _date_or_error(value: Any, field: str, errors: list[str]) -> date | None:
    try:
        return parse_date(value)
    except ValueError:
        errors.append(f"{field} must be a date")
        return None


class BaseImportSchema:
    """
    normalize_row maps a raw upload row to canonical field names and types.
    It returns the normalized dict plus a list of problems; a row with
    problems is reported, never posted.
    """

    def normalize_row(self, raw_row: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
        raise NotImplementedError


class BaselineSchema(BaseImportSchema):
    def normalize_row(self, raw_row):
        errors: list[str] = []
        row = {
            "account_id": to_text(pick(raw_row, "account_id", "accountId", "Account ID", "id")),
            "account_number": to_text(pick(raw_row, "accountNumber", "account_number", "Account Number", "account_no")),
            "branch_code": to_text(pick(raw_row, "branch_code", "branchCode", "Branch Code", "branch")),
            "balance": _decimal_or_error(
                pick(raw_row, "june_balance", "juneBalance", "June Balance", "baseline_balance", "balance"),
                "june_balance",
                errors,
            ),
        }
        if not row["account_id"]:
            errors.append("account_id is required")
        if row["balance"] is None and not errors:
            row["balance"] = Decimal("0")
        if row["branch_code"]:
            row["branch_code"] = row["branch_code"].upper()
        return row, errors


class MappingSchema(BaseImportSchema):
    def normalize_row(self, raw_row):
        errors: list[str] = []
        row = {
            "account_number": to_text(pick(raw_row, "accountNumber", "account_number", "Account Number")),
            "customer_name": to_text(pick(raw_row, "customerName", "customer_name", "Customer Name", "name")),
            "employee_id": to_text(pick(raw_row, "staffID", "staff_id", "employee_id", "employeeId", "Staff ID")),
            "account_type": to_text(pick(raw_row, "accountType", "account_type", "Account Type")),
            "phone_number": to_text(pick(raw_row, "phoneNumber", "phone_number", "Phone Number", "phone")),
            "balance": _decimal_or_error(
                pick(raw_row, "balance", "current_balance", "currentBalance", "Balance"), "balance", errors
            ),
            "notes": to_text(pick(raw_row, "notes", "Notes")),
        }
        if not row["account_number"]:
            errors.append("accountNumber is required")
        if not row["customer_name"]:
            errors.append("customerName is required")
        if not row["employee_id"]:
            errors.append("staffID is required")
        return row, errors


class PlanSchema(BaseImportSchema):
    def normalize_row(self, raw_row):
        errors: list[str] = []
        row: dict[str, Any] = {
            "branch_code": to_text(pick(raw_row, "branch_code", "branchCode", "Branch Code", "branch")),
            "description": to_text(pick(raw_row, "description", "Description")),
            "target_type": to_text(pick(raw_row, "target_type", "targetType", "Target Type")) or "incremental",
        }
        try:
            row["kpi_category"] = category_from_display(pick(raw_row, "kpi_category", "kpiCategory", "KPI Category", "category"))
        except ValidationError as e:
            errors.append(str(e))
        try:
            row["period"] = parse_plan_period(pick(raw_row, "period", "Period", "plan_period"))
        except ValidationError as e:
            errors.append(str(e))
        parse_errors = len(errors)
        row["target_value"] = _decimal_or_error(
            pick(raw_row, "target_value", "targetValue", "Target Value", "target"), "target_value", errors
        )
        if row["target_value"] is None and len(errors) == parse_errors:
            errors.append("target_value is required")
        if not row["branch_code"]:
            errors.append("branch_code is required")
        else:
            row["branch_code"] = row["branch_code"].upper()
        return row, errors


class ProductMappingSchema(BaseImportSchema):
    def normalize_row(self, raw_row):
        errors: list[str] = []
        row: dict[str, Any] = {
            "product_name": to_text(pick(raw_row, "product_name", "productName", "Product Name", "product")),
            "description": to_text(pick(raw_row, "description", "Description")),
            "is_active": to_bool(pick(raw_row, "is_active", "active"), default=True),
        }
        try:
            row["kpi_category"] = category_from_display(pick(raw_row, "kpi_category", "kpiCategory", "KPI Category", "category"))
        except ValidationError as e:
            errors.append(str(e))
        if not row["product_name"]:
            errors.append("product_name is required")
        return row, errors


class CbsSchema(BaseImportSchema):
    """
    One CBS extract row. The core banking exports have used several header
    spellings over time; all of them land on the same canonical fields.
    Missing balance/amount read as 0; a missing transaction date falls back
    to the validation date.
    """

    def __init__(self, validation_date: date):
        self.validation_date = validation_date

    def normalize_row(self, raw_row):
        errors: list[str] = []
        row = {
            "account_number": to_text(pick(raw_row, "accountNumber", "Account Number", "account_number", "account_id", "Account No")),
            "balance": _decimal_or_error(
                pick(raw_row, "balance", "Balance", "current_balance", "Current Balance"), "balance", errors
            ),
            "transaction_date": _date_or_error(
                pick(raw_row, "transactionDate", "Transaction Date", "transaction_date", "last_transaction_date"),
                "transactionDate",
                errors,
            ),
            "product": to_text(pick(raw_row, "product", "Product", "productName", "Product Name", "product_name")),
            "amount": _decimal_or_error(
                pick(raw_row, "amount", "Amount", "Transaction Amount", "transaction_amount"), "amount", errors
            ),
            "customer_name": to_text(pick(raw_row, "customerName", "Customer Name", "customer_name")),
        }
        if not row["account_number"]:
            errors.append("account number is required")
        if row["balance"] is None:
            row["balance"] = Decimal("0")
        if row["amount"] is None:
            row["amount"] = Decimal("0")
        if row["transaction_date"] is None:
            row["transaction_date"] = self.validation_date
        return row, errors
