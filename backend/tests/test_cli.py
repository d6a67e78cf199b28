"""
Flask CLI command tests.
"""

from decimal import Decimal

import pytest

from bookstock.models import Movement, Product, StockLocation
from bookstock.services import movement_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def movement(db_session, depot, branch, product_a):
    return movement_service.create_movement(
        source="depot",
        destination="branch-1",
        recipient_name="Karim",
        notes=None,
        items=[{"product_id": product_a.id, "quantity": 5, "unit_price": 18}],
    )


def test_locations_seed_and_list(runner, db_session):
    result = runner.invoke(args=["locations", "seed"])
    assert result.exit_code == 0
    assert "PASS Created location: Gros" in result.output

    again = runner.invoke(args=["locations", "seed"])
    assert "SKIP" in again.output
    assert db_session.query(StockLocation).count() == 3

    listing = runner.invoke(args=["locations", "list"])
    assert "al-ouloum" in listing.output
    assert "renaissance" in listing.output


def test_locations_add(runner, db_session):
    result = runner.invoke(args=["locations", "add", "--name", "Librairie Centre", "--code", "centre"])

    assert result.exit_code == 0
    assert "PASS" in result.output
    location = db_session.query(StockLocation).filter_by(code="centre").one()
    assert location.kind == "library"

    duplicate = runner.invoke(args=["locations", "add", "--name", "Autre", "--code", "centre"])
    assert "FAIL" in duplicate.output


def test_locations_add_rejects_unknown_kind(runner, db_session):
    result = runner.invoke(args=["locations", "add", "--name", "X", "--code", "x", "--kind", "warehouse"])
    assert result.exit_code != 0


def test_products_add_and_list(runner, db_session):
    result = runner.invoke(args=["products", "add", "--name", "Le Petit Prince", "--price", "45", "--reference", "ISBN-1"])

    assert result.exit_code == 0
    assert "Price: 45.00" in result.output
    assert db_session.query(Product).filter_by(reference="ISBN-1").one().price == Decimal("45.00")

    bad_price = runner.invoke(args=["products", "add", "--name", "Livre", "--price", "abc"])
    assert "FAIL price" in bad_price.output

    listing = runner.invoke(args=["products", "list", "--search", "prince"])
    assert "Le Petit Prince" in listing.output


def test_movements_list(runner, movement):
    result = runner.invoke(args=["movements", "list", "--location", "branch-1", "--role", "destination"])

    assert result.exit_code == 0
    assert movement["movement_number"] in result.output
    assert "90.00" in result.output
    assert "MISMATCH" not in result.output


def test_movements_list_bad_status(runner, movement):
    result = runner.invoke(args=["movements", "list", "--status", "lost"])
    assert "FAIL" in result.output


def test_movements_reconcile_clean(runner, movement):
    result = runner.invoke(args=["movements", "reconcile"])

    assert result.exit_code == 0
    assert "PASS" in result.output


def test_movements_reconcile_reports_mismatch(runner, db_session, movement):
    stored = db_session.get(Movement, movement["movement_id"])
    stored.total_amount = Decimal("91.00")
    db_session.commit()

    result = runner.invoke(args=["movements", "reconcile"])

    assert result.exit_code == 1
    assert movement["movement_number"] in result.output
    assert "difference 1.00" in result.output


def test_reset_db(runner, db_session, depot):
    db_session.commit()

    result = runner.invoke(args=["system", "reset-db", "--yes"])

    assert result.exit_code == 0
    assert db_session.query(StockLocation).count() == 0


def test_movements_list_non_ascii_digit_location(runner, movement):
    result = runner.invoke(args=["movements", "list", "--location", "\u00b2"])

    assert result.exit_code == 0
    assert "FAIL" in result.output
