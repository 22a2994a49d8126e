import logging
from typing import Any, Dict, List, Tuple

from pymongo.database import Database

from errors import InsufficientStockError
from pricing import ResolvedLine

log = logging.getLogger(__name__)


def _stock_update(line: ResolvedLine, delta: int, guarded: bool) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Filter and update for moving one line's stock by delta."""
    if line.size_entry_id is not None:
        entry_filter: Dict[str, Any] = {"_id": line.size_entry_id}
        if guarded:
            entry_filter["stock"] = {"$gte": -delta}
        query = {"_id": line.product_id, "sizes": {"$elemMatch": entry_filter}}
        # the top-level stock is the sum of the size entries, so it moves too
        update = {"$inc": {"sizes.$.stock": delta, "stock": delta}}
        return query, update
    query = {"_id": line.product_id}
    if guarded:
        query["stock"] = {"$gte": -delta}
    return query, {"$inc": {"stock": delta}}


def _shortfall(line: ResolvedLine) -> InsufficientStockError:
    label = f" ({line.size_label})" if line.size_label else ""
    return InsufficientStockError(f"Insufficient stock for {line.product_name}{label}")


def check_available(db: Database, lines: List[ResolvedLine]):
    """Read-only pre-check; the guarded decrement is what actually holds the line."""
    for line in lines:
        query, _ = _stock_update(line, -line.quantity, guarded=True)
        if not db["product"].find_one(query, {"_id": 1}):
            raise _shortfall(line)


def decrement(db: Database, lines: List[ResolvedLine]):
    """Takes every line's quantity out of stock, or nothing at all.

    Each update only matches while enough stock is left, so two checkouts
    racing for the last units cannot both succeed.
    """
    done: List[ResolvedLine] = []
    for line in lines:
        query, update = _stock_update(line, -line.quantity, guarded=True)
        result = db["product"].update_one(query, update)
        if result.matched_count == 0:
            log.warning("Insufficient stock for %s (wanted %s)", line.product_name, line.quantity)
            restore(db, done)
            raise _shortfall(line)
        done.append(line)


def restore(db: Database, lines: List[ResolvedLine]):
    for line in lines:
        query, update = _stock_update(line, line.quantity, guarded=False)
        result = db["product"].update_one(query, update)
        if result.matched_count == 0:
            # product or size entry was deleted since the order was placed
            log.warning("Could not restore %s units of %s", line.quantity, line.product_name)
