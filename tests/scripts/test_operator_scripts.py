"""
Tests for the operator scripts: seed_tiers.py and reconcile_statuses.py.
"""

import importlib.util
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from approval_kernel.db.engine import get_session, reset_engine
from approval_kernel.models.application import LoanApplicationModel

SCRIPTS = Path(__file__).resolve().parents[2] / "scripts"


def load_script(name: str):
    spec = importlib.util.spec_from_file_location(name, SCRIPTS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    yield f"sqlite:///{tmp_path / 'operator.db'}"
    reset_engine()


class TestSeedTiers:

    def test_seeds_default_catalog(self, database_url, capsys):
        seed = load_script("seed_tiers")
        assert seed.main(["--database-url", database_url]) == 0

        out = capsys.readouterr().out
        assert "Seeded 4 tier(s) from default" in out
        assert "Credit Committee" in out
        assert "unbounded" in out

    def test_reseeding_is_safe(self, database_url, capsys):
        seed = load_script("seed_tiers")
        assert seed.main(["--database-url", database_url]) == 0
        assert seed.main(["--database-url", database_url]) == 0

    def test_missing_database_url(self, monkeypatch, capsys):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        seed = load_script("seed_tiers")
        assert seed.main([]) == 2
        assert "DATABASE_URL" in capsys.readouterr().err


class TestReconcileStatuses:

    def _insert(self, **values):
        session = get_session()
        try:
            session.add(LoanApplicationModel(
                created_at=datetime.now(timezone.utc), borrower_type="individual", **values,
            ))
            session.commit()
        finally:
            session.close()

    def test_reconciles_after_seeding(self, database_url, capsys):
        assert load_script("seed_tiers").main(["--database-url", database_url]) == 0
        self._insert(
            application_number="LA-1",
            requested_amount=Decimal("2000000"),
            approval_status="pending_manager_approval",
        )
        capsys.readouterr()

        reconcile = load_script("reconcile_statuses")
        assert reconcile.main(["--database-url", database_url]) == 0
        out = capsys.readouterr().out
        assert "Reconciled 1 application(s): 1 changed, 0 failed" in out

        assert reconcile.main(["--database-url", database_url]) == 0
        assert "0 changed, 0 failed" in capsys.readouterr().out

    def test_failures_set_exit_code(self, database_url, capsys):
        assert load_script("seed_tiers").main(["--database-url", database_url]) == 0
        self._insert(application_number="LA-2", approval_status="pending_initial_review")

        reconcile = load_script("reconcile_statuses")
        assert reconcile.main(["--database-url", database_url, "--dry-run"]) == 1
        out = capsys.readouterr().out
        assert "FAILED" in out
        assert "dry run" in out

    def test_missing_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert load_script("reconcile_statuses").main([]) == 2
