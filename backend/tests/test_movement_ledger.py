"""
Movement ledger store tests.

Covers atomic creation, movement numbering, the compare-and-swap status
update and listing aggregates.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from bookstock.models import Movement, MovementItem, MovementEvent, MovementSequence
from bookstock.models.movements import (
    MOVEMENT_STATUS_PENDING,
    MOVEMENT_STATUS_CONFIRMED,
    MOVEMENT_STATUS_CLAIMED,
)
from bookstock.services import movement_ledger
from bookstock.services.audit_service import (
    EVENT_MOVEMENT_CREATED,
    EVENT_MOVEMENT_CONFIRMED,
    EVENT_MOVEMENT_CLAIMED,
)
from bookstock.services.movement_ledger import (
    LedgerWriteError,
    MovementFilters,
    MovementHeader,
    UpdateResult,
)
from bookstock.services.reconciliation_service import ReconciledItem


NOW = datetime(2026, 3, 1, 10, 30, tzinfo=timezone.utc)


def _create(source, destination, product, quantity=5, unit_price="18.00", **header_fields):
    unit_price = Decimal(unit_price)
    total = unit_price * quantity
    header = MovementHeader(
        source_location_id=source.id,
        destination_location_id=destination.id,
        recipient_name="Karim",
        total_amount=header_fields.pop("total_amount", total),
        **header_fields,
    )
    item = ReconciledItem(
        product_id=product.id,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total,
    )
    return movement_ledger.create_movement(header, [item], occurred_at=NOW)


def _update(movement_id, location, new_status=MOVEMENT_STATUS_CONFIRMED, **kwargs):
    kwargs.setdefault("expected_status", MOVEMENT_STATUS_PENDING)
    return movement_ledger.update_status(
        movement_id,
        new_status=new_status,
        actor_id=kwargs.pop("actor_id", 7),
        location_id=location.id,
        timestamp=NOW,
        **kwargs,
    )


class TestCreateMovement:
    def test_persists_header_items_and_event(self, db_session, depot, branch, product_a):
        movement = _create(depot, branch, product_a, created_by=11, notes="Rentrée")

        stored = db_session.get(Movement, movement.id)
        assert stored.status == MOVEMENT_STATUS_PENDING
        assert stored.total_amount == Decimal("90.00")
        assert stored.created_by == 11
        assert stored.notes == "Rentrée"
        assert [(item.product_id, item.quantity) for item in stored.items] == [(product_a.id, 5)]
        assert stored.items[0].total_price == Decimal("90.00")

        events = db_session.query(MovementEvent).filter_by(movement_id=movement.id).all()
        assert [event.event_type for event in events] == [EVENT_MOVEMENT_CREATED]
        assert events[0].location_id == depot.id
        assert events[0].actor_id == 11

    def test_numbers_are_sequential_per_source(self, db_session, depot, branch, other_branch, product_a):
        first = _create(depot, branch, product_a)
        second = _create(depot, other_branch, product_a)
        from_branch = _create(branch, depot, product_a)

        assert first.movement_number == f"MOV-{depot.id:03d}-000001"
        assert second.movement_number == f"MOV-{depot.id:03d}-000002"
        assert from_branch.movement_number == f"MOV-{branch.id:03d}-000001"

    def test_custom_prefix(self, db_session, depot, branch, product_a):
        header = MovementHeader(
            source_location_id=depot.id,
            destination_location_id=branch.id,
            recipient_name="Karim",
            total_amount=Decimal("18.00"),
        )
        item = ReconciledItem(product_id=product_a.id, quantity=1, unit_price=Decimal("18.00"),
                              total_price=Decimal("18.00"))

        movement = movement_ledger.create_movement(header, [item], number_prefix="TRF")
        assert movement.movement_number == f"TRF-{depot.id:03d}-000001"

    def test_requires_items(self, db_session, depot, branch):
        header = MovementHeader(
            source_location_id=depot.id,
            destination_location_id=branch.id,
            recipient_name="Karim",
            total_amount=Decimal("0.00"),
        )
        with pytest.raises(LedgerWriteError):
            movement_ledger.create_movement(header, [])

        assert db_session.query(Movement).count() == 0

    def test_failed_write_leaves_nothing_behind(self, db_session, depot, branch, product_a):
        # quantity 0 violates ck_movement_items_quantity_positive at flush time
        with pytest.raises(LedgerWriteError):
            _create(depot, branch, product_a, quantity=0)

        assert db_session.query(Movement).count() == 0
        assert db_session.query(MovementItem).count() == 0
        assert db_session.query(MovementEvent).count() == 0
        assert db_session.query(MovementSequence).count() == 0

        # The number was not consumed
        movement = _create(depot, branch, product_a)
        assert movement.movement_number == f"MOV-{depot.id:03d}-000001"

    def test_same_location_rejected_by_schema(self, db_session, depot, product_a):
        with pytest.raises(LedgerWriteError):
            _create(depot, depot, product_a)

        assert db_session.query(Movement).count() == 0


class TestUpdateStatus:
    def test_confirm_sets_audit_fields(self, db_session, depot, branch, product_a):
        movement = _create(depot, branch, product_a)

        result = _update(movement.id, branch, actor_id=42)

        assert result is UpdateResult.UPDATED
        stored = db_session.get(Movement, movement.id)
        assert stored.status == MOVEMENT_STATUS_CONFIRMED
        assert stored.confirmed_by == 42
        assert stored.confirmed_at is not None
        assert stored.claimed_at is None
        assert stored.claimed_by is None

        events = movement_ledger_events(db_session, movement.id)
        assert events == [EVENT_MOVEMENT_CREATED, EVENT_MOVEMENT_CONFIRMED]

    def test_claim_stores_message(self, db_session, depot, branch, product_a):
        movement = _create(depot, branch, product_a)

        result = _update(movement.id, branch, new_status=MOVEMENT_STATUS_CLAIMED,
                         claim_message="Carton abîmé")

        assert result is UpdateResult.UPDATED
        stored = db_session.get(Movement, movement.id)
        assert stored.status == MOVEMENT_STATUS_CLAIMED
        assert stored.claim_message == "Carton abîmé"
        assert stored.claimed_by == 7
        assert stored.confirmed_at is None

        claim_event = db_session.query(MovementEvent).filter_by(
            movement_id=movement.id, event_type=EVENT_MOVEMENT_CLAIMED
        ).one()
        assert claim_event.note == "Carton abîmé"
        assert claim_event.location_id == branch.id

    def test_second_transition_loses(self, db_session, depot, branch, product_a):
        movement = _create(depot, branch, product_a)

        assert _update(movement.id, branch) is UpdateResult.UPDATED
        # Same observed status, as a concurrent caller would have read it
        assert _update(movement.id, branch, new_status=MOVEMENT_STATUS_CLAIMED,
                       claim_message="late") is UpdateResult.CONFLICT

        stored = db_session.get(Movement, movement.id)
        assert stored.status == MOVEMENT_STATUS_CONFIRMED
        assert stored.claim_message is None
        assert movement_ledger_events(db_session, movement.id) == [
            EVENT_MOVEMENT_CREATED,
            EVENT_MOVEMENT_CONFIRMED,
        ]

    def test_missing_movement(self, db_session, branch):
        assert _update(987654, branch) is UpdateResult.NOT_FOUND

    def test_unsupported_target_status(self, db_session, depot, branch, product_a):
        movement = _create(depot, branch, product_a)

        with pytest.raises(LedgerWriteError):
            _update(movement.id, branch, new_status=MOVEMENT_STATUS_PENDING)

    def test_on_applied_runs_in_same_transaction(self, db_session, depot, branch, product_a):
        movement = _create(depot, branch, product_a)
        seen = []

        _update(movement.id, branch, on_applied=lambda m: seen.append((m.id, m.status)))

        assert seen == [(movement.id, MOVEMENT_STATUS_CONFIRMED)]

    def test_failing_effect_rolls_back_status(self, db_session, depot, branch, product_a):
        movement = _create(depot, branch, product_a)

        def _explode(_movement):
            raise RuntimeError("stock service down")

        with pytest.raises(RuntimeError):
            _update(movement.id, branch, on_applied=_explode)

        stored = db_session.get(Movement, movement.id)
        assert stored.status == MOVEMENT_STATUS_PENDING
        assert stored.confirmed_at is None
        assert movement_ledger_events(db_session, movement.id) == [EVENT_MOVEMENT_CREATED]


class TestListMovements:
    def test_aggregates_and_filters(self, db_session, depot, branch, other_branch, product_a, product_b):
        header = MovementHeader(
            source_location_id=depot.id,
            destination_location_id=branch.id,
            recipient_name="Karim",
            total_amount=Decimal("115.00"),
        )
        items = [
            ReconciledItem(product_id=product_a.id, quantity=5, unit_price=Decimal("18.00"),
                           total_price=Decimal("90.00")),
            ReconciledItem(product_id=product_b.id, quantity=2, unit_price=Decimal("12.50"),
                           total_price=Decimal("25.00")),
        ]
        to_branch = movement_ledger.create_movement(header, items)
        to_other = _create(depot, other_branch, product_a, quantity=1)
        back_to_depot = _create(branch, depot, product_b, quantity=1, unit_price="12.50")

        rows = movement_ledger.list_movements(MovementFilters(as_destination=branch.id))
        assert [row.movement.id for row in rows] == [to_branch.id]
        assert rows[0].item_count == 2
        assert rows[0].total_quantity == 7
        assert rows[0].items_total == Decimal("115.00")
        assert rows[0].to_dict()["items_total"] == "115.00"

        sent_by_depot = movement_ledger.list_movements(MovementFilters(as_source=depot.id))
        assert [row.movement.id for row in sent_by_depot] == [to_other.id, to_branch.id]

        involving_branch = movement_ledger.list_movements(MovementFilters(involving=branch.id))
        assert {row.movement.id for row in involving_branch} == {to_branch.id, back_to_depot.id}

    def test_status_filter_and_paging(self, db_session, depot, branch, product_a):
        movements = [_create(depot, branch, product_a, quantity=i + 1) for i in range(3)]
        _update(movements[0].id, branch)

        pending = movement_ledger.list_movements(MovementFilters(status=MOVEMENT_STATUS_PENDING))
        assert [row.movement.id for row in pending] == [movements[2].id, movements[1].id]

        page_two = movement_ledger.list_movements(MovementFilters(limit=2, offset=2))
        assert [row.movement.id for row in page_two] == [movements[0].id]

    def test_all_movements_oldest_first(self, db_session, depot, branch, product_a):
        first = _create(depot, branch, product_a)
        second = _create(depot, branch, product_a)

        assert [m.id for m in movement_ledger.all_movements()] == [first.id, second.id]


class TestLockContention:
    @pytest.fixture(autouse=True)
    def _no_backoff(self, monkeypatch):
        monkeypatch.setattr(movement_ledger.time, "sleep", lambda seconds: None)

    def _flaky_numbering(self, monkeypatch, failures):
        real = movement_ledger.next_movement_number
        calls = []

        def numbering(**kwargs):
            calls.append(kwargs)
            if len(calls) <= failures:
                raise OperationalError("UPDATE movement_sequences", {}, Exception("database is locked"))
            return real(**kwargs)

        monkeypatch.setattr(movement_ledger, "next_movement_number", numbering)
        return calls

    def test_create_retries_after_locked_database(self, db_session, monkeypatch, depot, branch, product_a):
        calls = self._flaky_numbering(monkeypatch, failures=1)

        movement = _create(depot, branch, product_a)

        assert len(calls) == 2
        assert movement.movement_number == f"MOV-{depot.id:03d}-000001"
        assert db_session.query(Movement).count() == 1
        assert db_session.query(MovementItem).count() == 1
        assert movement_ledger_events(db_session, movement.id) == [EVENT_MOVEMENT_CREATED]

    def test_create_gives_up_after_last_attempt(self, db_session, monkeypatch, depot, branch, product_a):
        calls = self._flaky_numbering(monkeypatch, failures=movement_ledger.WRITE_ATTEMPTS)

        with pytest.raises(LedgerWriteError):
            _create(depot, branch, product_a)

        assert len(calls) == movement_ledger.WRITE_ATTEMPTS
        assert db_session.query(Movement).count() == 0
        assert db_session.query(MovementEvent).count() == 0


def movement_ledger_events(session, movement_id):
    return [
        event.event_type
        for event in session.query(MovementEvent)
        .filter_by(movement_id=movement_id)
        .order_by(MovementEvent.id.asc())
    ]
