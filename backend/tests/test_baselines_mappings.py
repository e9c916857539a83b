"""
Baseline store, account mapping registry and product mapping tests.

Verifies:
- Baseline import upserts per (account, period) and switches the active period
- Exactly one active baseline period after import or activation
- Mapping classification and conditional owner reassignment
- Bulk mapping upload row errors, round-robin auto-balance
- Product -> KPI category registry
"""

from decimal import Decimal

import pytest

from pms.extensions import db
from pms.kpi import KpiCategory
from pms.models import AccountMapping, BaselineBalance
from pms.models.mapping import MAPPING_STATUS_TRANSFERRED, PRODUCT_STATUS_INACTIVE
from pms.models.tasks import MAPPING_MAPPED_TO_OTHER, MAPPING_MAPPED_TO_YOU, MAPPING_UNMAPPED
from pms.services import baseline_service, mapping_service, org_service, product_mapping_service, scoring_service
from pms.validation import ConflictError, NotFoundError, ValidationError


def _active_periods():
    rows = db.session.query(BaselineBalance.baseline_period).filter(BaselineBalance.is_active.is_(True)).distinct()
    return sorted(period for (period,) in rows)


# =============================================================================
# BASELINES
# =============================================================================


class TestBaselineImport:

    def test_import_creates_and_activates(self, db_session):
        result = baseline_service.import_baselines(
            [
                {"Account ID": "A-1", "June Balance": "1,200.50", "Branch Code": "atote"},
                {"account_id": "A-2", "june_balance": 300},
            ],
            baseline_period="2025-H1",
            baseline_date="2025-06-30",
        )
        assert result["created"] == 2
        assert result["activated"] is True
        assert result["baseline_date"] == "2025-06-30"

        record = baseline_service.get_balance_for_account("A-1")
        assert record.balance == Decimal("1200.50")
        assert record.branch_code == "ATOTE"
        assert _active_periods() == ["2025-H1"]

    def test_reimport_updates_in_place(self, db_session):
        baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 100}], baseline_period="2025-H1")
        result = baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 250}], baseline_period="2025-H1")
        assert (result["created"], result["updated"]) == (0, 1)
        assert db.session.query(BaselineBalance).count() == 1
        assert baseline_service.get_balance_for_account("A-1").balance == Decimal("250.00")

    def test_new_period_replaces_active(self, db_session):
        baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 100}], baseline_period="2025-H1")
        baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 400}], baseline_period="2025-H2")
        assert _active_periods() == ["2025-H2"]
        assert baseline_service.get_balance_for_account("A-1").balance == Decimal("400.00")
        assert baseline_service.get_balance_for_account("A-1", "2025-H1").balance == Decimal("100.00")

    def test_import_without_activation(self, db_session):
        baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 100}], baseline_period="2025-H1")
        result = baseline_service.import_baselines(
            [{"account_id": "A-1", "june_balance": 400}], baseline_period="2025-H2", make_active=False
        )
        assert result["activated"] is False
        assert _active_periods() == ["2025-H1"]

    def test_bad_rows_reported_with_sheet_row_numbers(self, db_session):
        result = baseline_service.import_baselines(
            [
                {"account_id": "A-1", "june_balance": 100},
                {"june_balance": 50},
                {"account_id": "A-3", "june_balance": "lots"},
            ],
            baseline_period="2025-H1",
        )
        assert result["created"] == 1
        assert [e["row"] for e in result["errors"]] == [3, 4]

    def test_bad_date_rejected(self, db_session):
        with pytest.raises(ValidationError):
            baseline_service.import_baselines([], baseline_period="2025-H1", baseline_date="June")


class TestBaselineActivation:

    def test_activate_switches_period(self, db_session):
        baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 100}], baseline_period="2025-H1")
        baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 400}], baseline_period="2025-H2")

        result = baseline_service.activate_period("2025-H1")
        assert result["activated_accounts"] == 1
        assert _active_periods() == ["2025-H1"]
        assert baseline_service.active_period() == "2025-H1"

    def test_unknown_period_leaves_active_alone(self, db_session):
        baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 100}], baseline_period="2025-H1")
        with pytest.raises(NotFoundError):
            baseline_service.activate_period("2030")
        assert _active_periods() == ["2025-H1"]

    def test_list_periods(self, db_session):
        baseline_service.import_baselines(
            [{"account_id": "A-1", "june_balance": 100}, {"account_id": "A-2", "june_balance": 50}],
            baseline_period="2025-H1",
        )
        baseline_service.import_baselines([{"account_id": "A-1", "june_balance": 400}], baseline_period="2025-H2")

        periods = {p["baseline_period"]: p for p in baseline_service.list_periods()}
        assert periods["2025-H1"]["account_count"] == 2
        assert periods["2025-H1"]["total_balance"] == 150.0
        assert periods["2025-H1"]["is_active"] is False
        assert periods["2025-H2"]["is_active"] is True


# =============================================================================
# ACCOUNT MAPPINGS
# =============================================================================


class TestAccountMappings:

    def test_classify(self, roster):
        mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id, balance=900)
        assert mapping_service.classify("M-1", roster.mso1.id) == (MAPPING_MAPPED_TO_YOU, True)
        assert mapping_service.classify("M-1", roster.mso2.id) == (MAPPING_MAPPED_TO_OTHER, False)
        assert mapping_service.classify("M-9", roster.mso1.id) == (MAPPING_UNMAPPED, False)

    def test_branch_defaults_to_owner_branch(self, roster):
        mapping = mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id)
        assert mapping.branch_id == roster.branch.id
        assert mapping.mapped_at is not None

    def test_duplicate_account_conflicts(self, roster):
        mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id)
        with pytest.raises(ConflictError):
            mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso2.id)

    def test_owner_must_belong_to_branch(self, roster):
        with pytest.raises(ValidationError):
            mapping_service.create_mapping(
                account_number="M-1", staff_id=roster.other_mso.id, branch_id=roster.branch.id
            )

    def test_unknown_account_type_rejected(self, roster):
        with pytest.raises(ValidationError):
            mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id, account_type="Crypto")

    def test_reassign_owner(self, roster):
        mapping = mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id)
        updated = mapping_service.update_mapping(mapping.id, staff_id=roster.mso2.id, actor_id=roster.bm.id)
        assert updated.staff_id == roster.mso2.id
        assert updated.mapped_by_id == roster.bm.id

    def test_stale_owner_does_not_reassign(self, roster):
        mapping = mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id)
        assert mapping_service.assign_owner(
            mapping_id=mapping.id, expected_owner_id=roster.mso2.id, new_owner_id=roster.mso3.id
        ) is False
        db.session.rollback()
        assert db.session.get(AccountMapping, mapping.id).staff_id == roster.mso1.id

    @pytest.mark.parametrize("requested", ["TRANSFERRED", "INACTIVE"])
    def test_reassign_keeps_requested_status(self, roster, requested):
        mapping = mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id, balance=5000)
        mapping_service.update_mapping(mapping.id, staff_id=roster.mso2.id, status=requested)

        db.session.expire_all()
        stored = db.session.get(AccountMapping, mapping.id)
        assert stored.staff_id == roster.mso2.id
        assert stored.status == requested
        assert scoring_service.qualifying_mappings(roster.mso2.id) == []

    def test_display_status_accepted(self, roster):
        mapping = mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id)
        assert mapping_service.update_mapping(mapping.id, status="Transferred").status == MAPPING_STATUS_TRANSFERRED
        listed = mapping_service.list_mappings(branch_id=roster.branch.id, status="transferred")
        assert [m["account_number"] for m in listed["items"]] == ["M-1"]

    def test_invalid_status_rejected(self, roster):
        mapping = mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id)
        with pytest.raises(ValidationError):
            mapping_service.update_mapping(mapping.id, status="GONE")


class TestBulkUploadAndBalance:

    def test_bulk_upload(self, roster):
        mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id)
        result = mapping_service.bulk_upload(
            [
                {"accountNumber": "M-1", "customerName": "Tigist", "staffID": "E006"},
                {"accountNumber": "M-2", "customerName": "Yonas", "staffID": "E005", "balance": "1,000"},
                {"accountNumber": "M-3", "customerName": "Liya", "staffID": "E102"},
                {"accountNumber": "M-4", "staffID": "E005"},
            ],
            branch_id=roster.branch.id,
        )
        assert (result["created"], result["updated"]) == (1, 1)
        assert [e["row"] for e in result["errors"]] == [4, 5]
        assert mapping_service.get_by_account("M-1").staff_id == roster.mso2.id
        assert mapping_service.get_by_account("M-2").current_balance == Decimal("1000.00")

    def test_auto_balance_round_robin(self, roster):
        for n in range(5):
            mapping_service.create_mapping(account_number=f"U-{n}", branch_id=roster.branch.id)
        result = mapping_service.auto_balance(branch_id=roster.branch.id)

        assert result["assigned"] == 5
        assert result["per_staff"] == {roster.mso1.id: 2, roster.mso2.id: 2, roster.mso3.id: 1}
        assert all(m.is_auto_balanced for m in db.session.query(AccountMapping))

    def test_auto_balance_needs_msos(self, roster):
        org_service.set_staff_active(roster.other_mso.id, False)
        with pytest.raises(ValidationError):
            mapping_service.auto_balance(branch_id=roster.other_branch.id)

    def test_listing_unassigned(self, roster):
        mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id)
        mapping_service.create_mapping(account_number="U-1", branch_id=roster.branch.id)
        listed = mapping_service.list_mappings(branch_id=roster.branch.id, unassigned=True)
        assert [m["account_number"] for m in listed["items"]] == ["U-1"]
        assert listed["total"] == 1


# =============================================================================
# PRODUCT MAPPINGS
# =============================================================================


class TestProductMappings:

    def test_upsert_by_name(self, db_session):
        first = product_mapping_service.upsert_product_mapping(product_name="Savings", kpi_category="Loan & NPL")
        second = product_mapping_service.upsert_product_mapping(product_name="Savings", kpi_category="Deposit Mobilization")
        assert first.id == second.id
        assert second.kpi_category == KpiCategory.DEPOSIT_MOBILIZATION
        assert product_mapping_service.active_product_names() == {"Savings"}

    def test_unknown_category_rejected(self, db_session):
        with pytest.raises(ValidationError):
            product_mapping_service.upsert_product_mapping(product_name="Savings", kpi_category="Lottery")

    def test_deactivate(self, db_session):
        mapping = product_mapping_service.upsert_product_mapping(product_name="Savings", kpi_category="Deposit Mobilization")
        assert product_mapping_service.deactivate(mapping.id).status == PRODUCT_STATUS_INACTIVE
        assert product_mapping_service.active_product_names() == set()

    def test_bulk_upsert(self, db_session):
        result = product_mapping_service.bulk_upsert([
            {"Product Name": "Savings", "KPI Category": "Deposit Mobilization"},
            {"Product Name": "Mobile Wallet", "KPI Category": "Digital"},
            {"Product Name": "Mystery"},
        ])
        assert result["created"] == 2
        assert result["errors"][0]["row"] == 4
