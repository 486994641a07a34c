import math
from collections.abc import Iterable, Mapping
from numbers import Real
from typing import Optional

RECENT_TRAIL_LIMIT = 7


def is_finite_number(value: object) -> bool:
    # bool is a Real subclass but never a monetary amount
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints beyond float range
        return False


def _amount_of(txn: object) -> Optional[float]:
    if not isinstance(txn, Mapping):
        return None
    amount = txn.get("amount")
    if not is_finite_number(amount):
        return None
    return amount


def recompute_balance(transactions: Iterable[object]) -> dict[str, float]:
    """Derive income, expense and net totals from a ledger.

    Positive amounts are income, negative amounts are expenses. Entries
    without a usable numeric amount contribute nothing, so this is safe to
    run against client-supplied ledgers that were never validated.
    """
    total_income = 0
    total_expenses = 0
    for txn in transactions:
        amount = _amount_of(txn)
        if amount is None:
            continue
        if amount > 0:
            total_income += amount
        elif amount < 0:
            total_expenses += -amount
    return {
        "totalIncome": total_income,
        "totalExpenses": total_expenses,
        "netBalance": total_income - total_expenses,
    }


def income_vs_expense(balance: Mapping[str, float]) -> dict[str, float]:
    return {
        "income": balance.get("totalIncome", 0),
        "expense": balance.get("totalExpenses", 0),
    }


def append_recent(
    trail: object, amount: float, limit: int = RECENT_TRAIL_LIMIT
) -> list[float]:
    """Return a new recent-amounts trail ending with ``abs(amount)``."""
    items = list(trail) if isinstance(trail, list) else []
    items.append(abs(amount))
    return items[-limit:]


def spent_by_category(transactions: Iterable[object]) -> dict[str, float]:
    spent: dict[str, float] = {}
    for txn in transactions:
        amount = _amount_of(txn)
        if amount is None or amount >= 0:
            continue
        category = txn.get("category")
        if not isinstance(category, str):
            continue
        spent[category] = spent.get(category, 0) + abs(amount)
    return spent
