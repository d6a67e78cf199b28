# Overview: Movement number allocation backed by per-location counters.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import MovementSequence


class SequenceError(Exception):
    """Raised when movement number allocation fails."""
    pass


def _current_next_number(location_id: int) -> int:
    return (
        db.session.query(MovementSequence.next_number)
        .filter_by(location_id=location_id)
        .scalar()
    )


def next_movement_number(
    *,
    location_id: int,
    prefix: str = "MOV",
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next movement number for a source location.

    Runs inside the caller's transaction (flush only, no commit) so the number
    is only consumed if the movement itself commits. The counter row is bumped
    with a single UPDATE, which serializes concurrent allocations.
    """
    if not location_id:
        raise SequenceError("location_id is required")
    if not prefix:
        raise SequenceError("prefix is required")

    stmt = (
        update(MovementSequence)
        .where(MovementSequence.location_id == location_id)
        .values(next_number=MovementSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_next_number(location_id) - 1
    else:
        try:
            # Savepoint: losing the insert race must not discard the caller's work
            with db.session.begin_nested():
                db.session.add(MovementSequence(location_id=location_id, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_next_number(location_id) - 1

    return f"{prefix}-{location_id:03d}-{next_num:0{pad}d}"
