# Overview: Pytest coverage for the flask CLI bootstrap and maintenance commands.

from salonledger.models import Branch, Tenant, User
from salonledger.models.auth import ROLE_OWNER


class TestSystemInit:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init", "--tenant", "Studio Bela", "--tenant-code", "BELA"])
        second = runner.invoke(args=["system", "init", "--tenant", "Studio Bela", "--tenant-code", "BELA"])

        assert first.exit_code == 0
        assert "Created owner login: owner" in first.output
        assert "Owner login exists" in second.output
        tenant = db_session.query(Tenant).filter_by(code="BELA").one()
        assert db_session.query(Branch).filter_by(tenant_id=tenant.id).count() == 1
        owner = db_session.query(User).filter_by(tenant_id=tenant.id).one()
        assert owner.role == ROLE_OWNER


class TestTenants:

    def test_create_and_add_branch(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["tenants", "create", "--name", "Studio Sul", "--code", "SUL"])
        tenant = db_session.query(Tenant).filter_by(code="SUL").one()

        result = runner.invoke(args=[
            "tenants", "add-branch", "--tenant-id", str(tenant.id),
            "--name", "Praia", "--timezone", "America/Sao_Paulo",
        ])

        assert "PASS Created branch: Praia" in result.output
        assert db_session.query(Branch).filter_by(tenant_id=tenant.id).one().timezone == "America/Sao_Paulo"

    def test_duplicate_code_refused(self, app, tenant):
        result = app.test_cli_runner().invoke(args=["tenants", "create", "--name", "Copia", "--code", "SALON"])
        assert "FAIL" in result.output

    def test_unknown_timezone_refused(self, app, db_session, tenant):
        result = app.test_cli_runner().invoke(args=[
            "tenants", "add-branch", "--tenant-id", str(tenant.id), "--name", "Lua", "--timezone", "Mars/Olympus",
        ])
        assert "Unknown timezone" in result.output
        assert db_session.query(Branch).filter_by(name="Lua").count() == 0


class TestUsers:

    def test_short_password_refused(self, app, db_session, tenant):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--tenant-id", str(tenant.id), "--username", "caio",
            "--password", "abc", "--role", "staff",
        ])
        assert "FAIL" in result.output
        assert db_session.query(User).filter_by(username="caio").count() == 0

    def test_create_staff(self, app, db_session, tenant, branch_a):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--tenant-id", str(tenant.id), "--username", "caio",
            "--password", "Password123!", "--role", "staff", "--branch-id", str(branch_a.id),
        ])
        assert "PASS Created user: caio" in result.output
        assert db_session.query(User).filter_by(username="caio").one().branch_id == branch_a.id


class TestMaintenance:

    def test_sessions_cleanup_runs(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["sessions", "cleanup"])
        assert result.exit_code == 0
        assert "Deleted 0" in result.output

    def test_auto_complete_runs(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["appointments", "auto-complete"])
        assert result.exit_code == 0
        assert "Completed 0 appointment(s)." in result.output
