from collections.abc import Mapping
from typing import Any

from ledger import income_vs_expense, recompute_balance

CREDENTIAL_FIELD = "password"


def normalize_email(email: object) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def new_user_document(name: str, email: str, password_hash: str) -> dict[str, Any]:
    return {
        "name": name.strip(),
        "email": normalize_email(email),
        CREDENTIAL_FIELD: password_hash,
        "dashboard": {
            "balance": {"totalIncome": 0, "totalExpenses": 0, "netBalance": 0},
            "quickAddDefaults": {"categories": [], "lastUsedDate": None},
            "miniCharts": {
                "incomeVsExpense": {"income": 0, "expense": 0},
                "recentTransactions": [],
            },
        },
        "transactions": [],
        "budgets": {},
        "reports": {"categoryBreakdown": {}, "netWorthTrend": [], "monthlySpending": []},
        "settings": {"theme": "light", "exportFormat": []},
    }


def without_credential(document: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in document.items() if key != CREDENTIAL_FIELD}


def refresh_derived(document: dict[str, Any]) -> dict[str, Any]:
    """Rewrite the dashboard aggregates from ``document["transactions"]``.

    ``document`` is updated in place; its dashboard (and mini-chart) mappings
    are replaced with fresh copies so callers never mutate a dict that is
    shared with the stored version.
    """
    dashboard = document.get("dashboard")
    dashboard = dict(dashboard) if isinstance(dashboard, Mapping) else {}
    balance = recompute_balance(document["transactions"])
    dashboard["balance"] = balance
    mini_charts = dashboard.get("miniCharts")
    mini_charts = dict(mini_charts) if isinstance(mini_charts, Mapping) else {}
    mini_charts["incomeVsExpense"] = income_vs_expense(balance)
    dashboard["miniCharts"] = mini_charts
    document["dashboard"] = dashboard
    return document


def merge_user_document(
    stored: Mapping[str, Any], patch: Mapping[str, Any]
) -> dict[str, Any]:
    """Apply a partial update to a stored user document.

    Top-level fields in ``patch`` replace the stored ones wholesale; nested
    mappings such as ``budgets`` are not deep-merged. The stored email always
    wins, the stored credential wins unless the patch carries a non-empty one,
    and a ledger present after the overlay has its dashboard totals
    recomputed. Neither argument is mutated.
    """
    merged = dict(stored)
    merged.update(patch)

    merged["email"] = stored.get("email")

    if not patch.get(CREDENTIAL_FIELD):
        if CREDENTIAL_FIELD in stored:
            merged[CREDENTIAL_FIELD] = stored[CREDENTIAL_FIELD]
        else:
            merged.pop(CREDENTIAL_FIELD, None)

    if isinstance(merged.get("transactions"), list):
        refresh_derived(merged)
    return merged
