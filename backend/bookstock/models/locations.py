from __future__ import annotations

from ..extensions import db
from bookstock.time_utils import to_utc_z


LOCATION_KIND_DEPOT = "depot"
LOCATION_KIND_LIBRARY = "library"
LOCATION_KINDS = (LOCATION_KIND_DEPOT, LOCATION_KIND_LIBRARY)


class StockLocation(db.Model):
    """
    Inventory-holding location: a depot or a library branch.

    IDENTITY: `id` is the only value the transfer guard compares. `code` is the
    short slug clients send; it is unique and matched exactly by the location
    registry (see services/location_service.py), so code -> id is 1:1.

    LIFECYCLE: Seeded out-of-band (flask locations seed). Movements reference
    locations without cascade, so a referenced location cannot be deleted.
    """
    __tablename__ = "stock_locations"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stock_locations_code"),
        db.UniqueConstraint("name", name="uq_stock_locations_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False)

    # depot or library; depot -> depot movements are allowed
    kind = db.Column(db.String(16), nullable=False, default=LOCATION_KIND_LIBRARY)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<StockLocation id={self.id} code={self.code!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "kind": self.kind,
            "created_at": to_utc_z(self.created_at),
        }
