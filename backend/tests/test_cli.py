# Overview: Pytest coverage for the Flask CLI command groups.

from elhamd.models import Invoice, Transaction, Vehicle


class TestCli:

    def test_seed_demo_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "seed-demo"])
        assert result.exit_code == 0, result.output
        assert "PASS Created paid service invoice" in result.output

        statuses = sorted(inv.status for inv in db_session.query(Invoice).all())
        assert statuses == ["DRAFT", "PAID"]
        assert db_session.query(Vehicle).one().status == "RESERVED"
        assert db_session.query(Transaction).filter_by(type="EXPENSE").count() == 1

        again = runner.invoke(args=["system", "seed-demo"])
        assert "SKIP" in again.output

    def test_integrity_check_reports_healthy(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["system", "seed-demo"])

        result = runner.invoke(args=["finance", "integrity-check"])
        assert result.exit_code == 0, result.output
        assert "PASS No integrity issues found" in result.output

    def test_low_stock_listing(self, app, db_session, make_part):
        make_part(quantity=1, min_stock_level=5)
        result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])
        assert "PN-0001" in result.output
        assert "LOW_STOCK" in result.output

    def test_overview(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["finance", "overview", "--period", "year"])
        assert result.exit_code == 0, result.output
        assert "Revenue:" in result.output
