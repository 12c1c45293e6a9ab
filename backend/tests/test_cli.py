"""CLI command tests (flask system/users/stock/zreports)."""

from stockpos.services import auth_service, inventory_service, sales_service
from stockpos.services.document_store import store


class TestSystemCommands:

    def test_init_creates_admin_once(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init", "--admin-password", "s3cret"])
        assert result.exit_code == 0, result.output
        assert "PASS Created admin account 'admin'" in result.output
        assert auth_service.authenticate("admin", "s3cret") is not None

        result = runner.invoke(args=["system", "init", "--admin-password", "other"])
        assert result.exit_code == 0, result.output
        assert "SKIP" in result.output
        assert auth_service.authenticate("admin", "s3cret") is not None


class TestUserCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["users", "create", "--username", "sam", "--password", "pw", "--role", "user"])
        assert result.exit_code == 0, result.output
        assert "PASS Created user 'sam'" in result.output

        result = runner.invoke(args=["users", "list"])
        assert "sam" in result.output

    def test_duplicate_fails(self, app, cashier_user):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["users", "create", "--username", "cashier", "--password", "pw"])
        assert result.exit_code != 0
        assert "already exists" in result.output


class TestStockCommands:

    def test_list_and_low(self, app, db_session):
        inventory_service.restock("Mouse", 3, "Peripherals", "500.00")
        inventory_service.restock("Cable", 30, "Cables", "2.00")
        runner = app.test_cli_runner()

        result = runner.invoke(args=["stock", "list"])
        assert "Mouse" in result.output
        assert "Cable" in result.output

        result = runner.invoke(args=["stock", "list", "--low"])
        assert "Mouse" in result.output
        assert "Cable" not in result.output


class TestZReportCommands:

    def test_generate_then_nothing_new(self, app, db_session):
        item = inventory_service.restock("Mouse", 10, "Peripherals", "500.00")
        sales_service.sell(item.id, 3, "cashier")
        runner = app.test_cli_runner()

        result = runner.invoke(args=["zreports", "generate", "--operator", "admin"])
        assert result.exit_code == 0, result.output
        assert "with 1 sales, total 1500.00" in result.output
        assert len(store.list("zreports")) == 1

        result = runner.invoke(args=["zreports", "generate"])
        assert result.exit_code == 0
        assert result.output.startswith("SKIP")
        assert len(store.list("zreports")) == 1

        result = runner.invoke(args=["zreports", "list"])
        assert "Total Z-Report Sales: 1500.00" in result.output
