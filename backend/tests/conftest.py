"""
Pytest fixtures for PMS backend tests.

Provides the app on an in-memory database, a per-test clean session, a
two-branch roster and bearer-token headers for any staff member.
"""

from types import SimpleNamespace

import pytest

from pms import create_app
from pms.extensions import db
from pms.services import org_service, plan_share_service, session_service, task_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'EMPTY_CHAIN_AUTO_APPROVE': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def roster(db_session):
    """
    Branch ATOTE (area A1) with a full seat set, plus branch BOLE in the same
    area with only a branch manager and one MSO.
    """
    region = org_service.create_region(code="NR", name="Northern Region")
    area = org_service.create_area(code="A1", name="Area 1", region_id=region.id)
    atote = org_service.create_branch(code="ATOTE", name="Atote", area_id=area.id)
    bole = org_service.create_branch(code="BOLE", name="Bole", area_id=area.id)

    def add(employee_id, name, role, position=None, branch=None, area_id=None):
        return org_service.create_staff(
            employee_id=employee_id,
            name=name,
            role=role,
            position=position,
            branch_id=branch.id if branch else None,
            area_id=area_id,
        )

    return SimpleNamespace(
        region=region,
        area=area,
        branch=atote,
        other_branch=bole,
        admin=add("HQ-001", "HQ Admin", "Admin"),
        area_manager=add("AM-01", "Almaz Area", "Area Manager", area_id=area.id),
        bm=add("E001", "Bekele Manager", "Branch Manager", "Branch Manager", atote),
        msm=add("E002", "Mulu MSM", "Line Manager", "MSM", atote),
        accountant=add("E003", "Abebe Accountant", "Staff", "Accountant", atote),
        auditor=add("E004", "Aster Auditor", "Staff", "Auditor", atote),
        mso1=add("E005", "Meron MSO", "Staff", "MSO I", atote),
        mso2=add("E006", "Dawit MSO", "Staff", "MSO II", atote),
        mso3=add("E007", "Hana MSO", "Sub-Team Leader", "MSO III", atote),
        other_bm=add("E101", "Kebede Manager", "Branch Manager", "Branch Manager", bole),
        other_mso=add("E102", "Selam MSO", "Staff", "MSO I", bole),
    )


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Return a function issuing bearer headers for a staff member."""
    def _headers(staff):
        _session, token = session_service.create_session(staff.id, user_agent="pytest")
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture(scope='function')
def deposit_shares(roster):
    """Default Deposit Mobilization split: BM 20, MSM 15, Accountant 10, MSO pool 30."""
    return plan_share_service.create_config(
        kpi_category="Deposit Mobilization",
        plan_shares={"Branch Manager": 20, "MSM": 15, "Accountant": 10, "MSO": 30},
    )


@pytest.fixture(scope='function')
def approve_all(db_session):
    """Return a function walking a task's whole approval chain with 'approve'."""
    def _approve(task):
        for entry in list(task.approval_chain):
            task = task_service.decide_task(task.id, approver_id=entry["approver_id"], decision="approve")
        return task
    return _approve
