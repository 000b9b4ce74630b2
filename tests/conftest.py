"""
Shared pytest fixtures for the QA Board test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - seed: Two projects with runs, results and repository cases
"""

from datetime import datetime, timezone

import pytest

from qaboard import create_app
from qaboard.models import db as _db
from qaboard.models.project import Project, User
from qaboard.models.repository import (
    CaseTemplate,
    RepositoryCase,
    RepositoryCaseStep,
    RepositoryFolder,
    WorkflowState,
)
from qaboard.models.testing import (
    Configuration,
    Milestone,
    Status,
    TestRun,
    TestRunCase,
    TestRunResult,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain data ──────────────────────────────────────────────────────────


@pytest.fixture()
def seed():
    """Seed two projects and return their ids.

    Project "Alpha" execution results counted by test-execution reports
    (soft-deleted results and results of deleted runs are excluded):

        result  run   case  status  executor        executed_at (UTC)   elapsed
        r1      run1  rc1   passed  Alice           2024-03-01 08:00    60
        r2      run1  rc2   failed  Alice           2024-03-01 23:30    120
        r3      run2  rc3   passed  Bob             2024-03-02 00:15    0
        r4      run1  rc1   passed  Carol (deleted) 2024-03-02 10:00    NULL
        r5      run1  rc2   NULL    Alice           2024-03-02 11:00    30

    run1 targets the Chrome configuration and milestone R1; run2 has neither.
    The "Untested" status exists but no counted result references it.
    Project "Beta" has one failed result by Bob on 2024-03-01 (30 s).

    Live repository cases of "Alpha":

        case     automated  source  state  folder           created (UTC)      steps
        login    no         MANUAL  Draft  Login            2024-02-01 10:00   3
        logout   yes        API     Ready  Login            2024-02-01 20:00   1
        signup   no         MANUAL  NULL   Archive (deleted) 2024-02-03 09:00  0

    "Beta" has one automated case created 2024-02-05.
    """
    alpha = Project(name="Alpha")
    beta = Project(name="Beta")
    gone = Project(name="Gone", is_deleted=True)
    _db.session.add_all([alpha, beta, gone])

    passed = Status(name="Passed", system_name="passed", color="#22c55e", is_success=True)
    failed = Status(name="Failed", system_name="failed", color="#ef4444", is_success=False)
    untested = Status(name="Untested", system_name="untested", color="#9ca3af")
    _db.session.add_all([passed, failed, untested])

    alice = User(name="Alice", email="alice@example.com")
    bob = User(name="Bob", email="bob@example.com")
    carol = User(name="Carol", email="carol@example.com", is_deleted=True)
    _db.session.add_all([alice, bob, carol])

    chrome = Configuration(name="Chrome")
    _db.session.add(chrome)
    _db.session.flush()

    release = Milestone(project_id=alpha.id, name="R1", milestone_type="release")
    _db.session.add(release)

    # ── Repository ───────────────────────────────────────────────────
    template = CaseTemplate(template_name="Default", is_default=True)
    draft = WorkflowState(name="Draft", icon="pencil", color="#f59e0b")
    ready = WorkflowState(name="Ready", icon="check", color="#10b981")
    login_folder = RepositoryFolder(project_id=alpha.id, name="Login")
    archive = RepositoryFolder(project_id=alpha.id, name="Archive", is_deleted=True)
    _db.session.add_all([template, draft, ready, login_folder, archive])
    _db.session.flush()

    login = RepositoryCase(
        project_id=alpha.id, folder_id=login_folder.id, template_id=template.id,
        state_id=draft.id, creator_id=alice.id, name="Login works", source="MANUAL",
        automated=False, created_at=utc(2024, 2, 1, 10, 0),
    )
    logout = RepositoryCase(
        project_id=alpha.id, folder_id=login_folder.id, template_id=template.id,
        state_id=ready.id, creator_id=bob.id, name="Logout works", source="API",
        automated=True, created_at=utc(2024, 2, 1, 20, 0),
    )
    signup = RepositoryCase(
        project_id=alpha.id, folder_id=archive.id, template_id=None,
        state_id=None, creator_id=None, name="Signup works", source="MANUAL",
        automated=False, created_at=utc(2024, 2, 3, 9, 0),
    )
    removed = RepositoryCase(
        project_id=alpha.id, folder_id=login_folder.id, name="Removed case",
        automated=True, is_deleted=True, created_at=utc(2024, 2, 1, 11, 0),
    )
    checkout = RepositoryCase(
        project_id=beta.id, name="Checkout works", source="JUNIT",
        automated=True, created_at=utc(2024, 2, 5, 12, 0),
    )
    _db.session.add_all([login, logout, signup, removed, checkout])
    _db.session.flush()

    for step_no in (1, 2, 3):
        _db.session.add(RepositoryCaseStep(case_id=login.id, step_no=step_no,
                                           action=f"Step {step_no}"))
    _db.session.add(RepositoryCaseStep(case_id=login.id, step_no=4, action="Old step",
                                       is_deleted=True))
    _db.session.add(RepositoryCaseStep(case_id=logout.id, step_no=1, action="Log out"))

    # ── Runs ─────────────────────────────────────────────────────────
    run1 = TestRun(project_id=alpha.id, name="Smoke", config_id=chrome.id,
                   milestone_id=release.id)
    run2 = TestRun(project_id=alpha.id, name="Regression")
    deleted_run = TestRun(project_id=alpha.id, name="Abandoned", is_deleted=True)
    run3 = TestRun(project_id=beta.id, name="Beta smoke")
    _db.session.add_all([run1, run2, deleted_run, run3])
    _db.session.flush()

    rc1 = TestRunCase(test_run_id=run1.id, repository_case_id=login.id)
    rc2 = TestRunCase(test_run_id=run1.id, repository_case_id=logout.id)
    rc3 = TestRunCase(test_run_id=run2.id, repository_case_id=login.id)
    rc_deleted = TestRunCase(test_run_id=deleted_run.id, repository_case_id=login.id)
    rc4 = TestRunCase(test_run_id=run3.id, repository_case_id=checkout.id)
    _db.session.add_all([rc1, rc2, rc3, rc_deleted, rc4])
    _db.session.flush()

    def result(run, run_case, status, user, executed_at, elapsed, is_deleted=False):
        return TestRunResult(
            test_run_id=run.id, test_run_case_id=run_case.id,
            status_id=status.id if status else None, executed_by_id=user.id,
            executed_at=executed_at, elapsed=elapsed, is_deleted=is_deleted,
        )

    _db.session.add_all([
        result(run1, rc1, passed, alice, utc(2024, 3, 1, 8, 0), 60),
        result(run1, rc2, failed, alice, utc(2024, 3, 1, 23, 30), 120),
        result(run2, rc3, passed, bob, utc(2024, 3, 2, 0, 15), 0),
        result(run1, rc1, passed, carol, utc(2024, 3, 2, 10, 0), None),
        result(run1, rc2, None, alice, utc(2024, 3, 2, 11, 0), 30),
        # excluded: soft-deleted result, deleted run
        result(run2, rc3, failed, bob, utc(2024, 3, 1, 9, 30), 500, is_deleted=True),
        result(deleted_run, rc_deleted, passed, alice, utc(2024, 3, 1, 9, 0), 500),
        # project Beta
        result(run3, rc4, failed, bob, utc(2024, 3, 1, 12, 0), 30),
    ])
    _db.session.commit()

    return {
        "alpha": alpha.id,
        "beta": beta.id,
        "gone": gone.id,
        "passed": passed.id,
        "failed": failed.id,
        "untested": untested.id,
        "alice": alice.id,
        "bob": bob.id,
        "carol": carol.id,
        "chrome": chrome.id,
        "release": release.id,
        "run1": run1.id,
        "run2": run2.id,
        "rc1": rc1.id,
        "rc2": rc2.id,
        "rc3": rc3.id,
        "draft": draft.id,
        "ready": ready.id,
        "login_folder": login_folder.id,
        "archive": archive.id,
        "template": template.id,
    }
