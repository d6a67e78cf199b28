from __future__ import annotations

from ..extensions import db
from bookstock.money import format_money
from bookstock.time_utils import to_utc_z


# Movement status constants
MOVEMENT_STATUS_PENDING = "pending"
MOVEMENT_STATUS_CONFIRMED = "confirmed"
MOVEMENT_STATUS_CLAIMED = "claimed"
MOVEMENT_STATUSES = (
    MOVEMENT_STATUS_PENDING,
    MOVEMENT_STATUS_CONFIRMED,
    MOVEMENT_STATUS_CLAIMED,
)


class Movement(db.Model):
    """
    Inter-stock movement: goods (and their value) sent from a source location
    to a destination location.

    LIFECYCLE:
    1. pending: Created together with its items, awaiting the destination
    2. confirmed: Destination received the goods as expected (terminal)
    3. claimed: Destination received the goods with a discrepancy (terminal)

    INVARIANTS:
    - source_location_id != destination_location_id
    - total_amount == sum(item.total_price); items never change after creation
    - confirmed_at/confirmed_by only when confirmed, claimed_* only when claimed
    - Only the destination location may move a pending movement forward
    - Never deleted by the application (audit)

    Status changes go through a conditional UPDATE ... WHERE status = 'pending'
    (services/movement_ledger.py), never a read-then-write.
    """
    __tablename__ = "movements"
    __table_args__ = (
        db.UniqueConstraint("movement_number", name="uq_movements_number"),
        db.CheckConstraint(
            "source_location_id <> destination_location_id",
            name="ck_movements_distinct_locations",
        ),
        db.Index("ix_movements_destination_status", "destination_location_id", "status"),
        db.Index("ix_movements_source_status", "source_location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "MOV-003-000001" - globally unique
    movement_number = db.Column(db.String(64), nullable=False)

    source_location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False, index=True)
    destination_location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False, index=True)

    # Opaque actor ids (user directory lives outside this service)
    created_by = db.Column(db.Integer, nullable=True)

    # Person physically receiving the goods, not the destination location
    recipient_name = db.Column(db.String(255), nullable=False)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    # pending, confirmed, claimed
    status = db.Column(db.String(16), nullable=False, default=MOVEMENT_STATUS_PENDING, index=True)

    notes = db.Column(db.Text, nullable=True)
    claim_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_by = db.Column(db.Integer, nullable=True)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    claimed_by = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    source_location = db.relationship("StockLocation", foreign_keys=[source_location_id])
    destination_location = db.relationship("StockLocation", foreign_keys=[destination_location_id])
    items = db.relationship(
        "MovementItem",
        back_populates="movement",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MovementItem.id",
    )

    @property
    def is_finalized(self) -> bool:
        return self.status in (MOVEMENT_STATUS_CONFIRMED, MOVEMENT_STATUS_CLAIMED)

    def __repr__(self) -> str:
        return f"<Movement id={self.id} number={self.movement_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "movement_number": self.movement_number,
            "source_location_id": self.source_location_id,
            "source_location_name": self.source_location.name if self.source_location else None,
            "destination_location_id": self.destination_location_id,
            "destination_location_name": self.destination_location.name if self.destination_location else None,
            "created_by": self.created_by,
            "recipient_name": self.recipient_name,
            "total_amount": format_money(self.total_amount),
            "status": self.status,
            "notes": self.notes,
            "claim_message": self.claim_message,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "confirmed_by": self.confirmed_by,
            "claimed_at": to_utc_z(self.claimed_at) if self.claimed_at else None,
            "claimed_by": self.claimed_by,
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class MovementItem(db.Model):
    """
    One product line of a movement.

    total_price is stored, not recomputed, so the value at transfer time
    survives later catalog price changes.
    """
    __tablename__ = "movement_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_movement_items_quantity_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_movement_items_unit_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(
        db.Integer,
        db.ForeignKey("movements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    movement = db.relationship("Movement", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_id": self.movement_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_reference": self.product.reference if self.product else None,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "total_price": format_money(self.total_price),
            "notes": self.notes,
        }


class MovementSequence(db.Model):
    """
    Atomic per-source-location movement counters.

    WHY: Prevent two concurrent creations from the same location allocating
    the same movement number.
    """
    __tablename__ = "movement_sequences"
    __table_args__ = (
        db.UniqueConstraint("location_id", name="uq_movement_sequences_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class MovementEvent(db.Model):
    """Append-only audit trail for movements (created, confirmed, claimed)."""
    __tablename__ = "movement_events"
    __table_args__ = (
        db.Index("ix_movement_events_movement_occurred", "movement_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(db.Integer, db.ForeignKey("movements.id", ondelete="CASCADE"), nullable=False, index=True)

    # movement.created, movement.confirmed, movement.claimed
    event_type = db.Column(db.String(64), nullable=False, index=True)

    # Acting location and actor
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False, index=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_id": self.movement_id,
            "event_type": self.event_type,
            "location_id": self.location_id,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
        }
