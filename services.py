from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from config import get_settings
from ledger import append_recent, is_finite_number, spent_by_category
from merge import (
    CREDENTIAL_FIELD,
    merge_user_document,
    new_user_document,
    normalize_email,
    refresh_derived,
    without_credential,
)
from schemas import LoginIn, RegisterIn, TransactionIn
from security import (
    burn_password_check,
    hash_password,
    password_too_long,
    verify_password,
)
from store import Document, UserStore

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    pass


class InvalidTransaction(ValidationError):
    pass


class DuplicateEmail(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


class UserNotFound(ValueError):
    pass


def today_local() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def _index_of(documents: list[Document], email: str) -> int:
    for index, document in enumerate(documents):
        if isinstance(document, Mapping) and document.get("email") == email:
            return index
    raise UserNotFound("User not found")


def _next_transaction_id(transactions: list[Any]) -> int:
    candidate = int(time.time() * 1000)
    existing = [
        txn.get("id")
        for txn in transactions
        if isinstance(txn, Mapping)
        and isinstance(txn.get("id"), int)
        and not isinstance(txn.get("id"), bool)
    ]
    if existing and max(existing) >= candidate:
        candidate = max(existing) + 1
    return candidate


class AccountService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def register(self, data: RegisterIn) -> Document:
        name = data.name.strip()
        email = normalize_email(data.email)
        if not name or not email or not data.password:
            raise ValidationError("All fields (name, email, password) are required")
        if password_too_long(data.password):
            raise ValidationError("Password must be at most 72 bytes")

        password_hash = hash_password(data.password)
        with self.store.mutation():
            if self.store.find_by_email(email) is not None:
                raise DuplicateEmail("Email already registered")
            document = new_user_document(name, email, password_hash)
            self.store.insert(document)
        logger.info(f"register: email={email}")
        return without_credential(document)

    def authenticate(self, data: LoginIn) -> Document:
        email = normalize_email(data.email)
        if not email or not data.password:
            raise ValidationError("Email and password are required")

        document = self.store.find_by_email(email)
        if document is None:
            burn_password_check(data.password)
            logger.info(f"login_failed: email={email}")
            raise InvalidCredentials("Invalid credentials")
        if not verify_password(data.password, document.get(CREDENTIAL_FIELD)):
            logger.info(f"login_failed: email={email}")
            raise InvalidCredentials("Invalid credentials")
        return without_credential(document)

    def get_by_email(self, email: str) -> Document:
        document = self.store.find_by_email(normalize_email(email))
        if document is None:
            raise UserNotFound("User not found")
        return without_credential(document)

    def list_all(self) -> list[Document]:
        return [
            without_credential(document)
            for document in self.store.load()
            if isinstance(document, Mapping)
        ]


class TransactionService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    @staticmethod
    def _validate(data: TransactionIn) -> None:
        has_text = data.description.strip() and data.category.strip()
        if not is_finite_number(data.amount) or not has_text:
            raise InvalidTransaction(
                "transaction must include description, category and numeric amount"
            )

    def add_transaction(self, email: str, data: TransactionIn) -> Document:
        self._validate(data)
        email = normalize_email(email)

        with self.store.mutation():
            documents = self.store.load()
            index = _index_of(documents, email)
            document = dict(documents[index])

            transactions = document.get("transactions")
            transactions = list(transactions) if isinstance(transactions, list) else []
            txn_date = (data.date or today_local()).isoformat()
            txn = {
                "id": _next_transaction_id(transactions),
                "date": txn_date,
                "description": data.description,
                "category": data.category,
                "amount": data.amount,
            }
            transactions.append(txn)
            document["transactions"] = transactions

            refresh_derived(document)
            dashboard = document["dashboard"]
            mini_charts = dashboard["miniCharts"]
            mini_charts["recentTransactions"] = append_recent(
                mini_charts.get("recentTransactions"), data.amount
            )
            quick_add = dashboard.get("quickAddDefaults")
            quick_add = dict(quick_add) if isinstance(quick_add, Mapping) else {}
            quick_add.setdefault("categories", [])
            quick_add["lastUsedDate"] = txn_date
            dashboard["quickAddDefaults"] = quick_add

            documents[index] = document
            self.store.replace_all(documents)

        logger.info(
            f"transaction_added: email={email} id={txn['id']} amount={data.amount}"
        )
        return without_credential(document)


class BudgetService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def update_user(self, email: str, patch: Mapping[str, Any]) -> Document:
        email = normalize_email(email)
        patch = dict(patch)

        password = patch.get(CREDENTIAL_FIELD)
        if password:
            if not isinstance(password, str):
                raise ValidationError("password must be a string")
            if password_too_long(password):
                raise ValidationError("Password must be at most 72 bytes")
            patch[CREDENTIAL_FIELD] = hash_password(password)
        if isinstance(patch.get("name"), str):
            patch["name"] = patch["name"].strip()

        with self.store.mutation():
            documents = self.store.load()
            index = _index_of(documents, email)
            merged = merge_user_document(documents[index], patch)
            documents[index] = merged
            self.store.replace_all(documents)

        logger.info(f"user_updated: email={email} fields={sorted(patch)}")
        return without_credential(merged)

    def replace_budgets(self, email: str, budgets: Mapping[str, float]) -> Document:
        return self.update_user(email, {"budgets": dict(budgets)})

    def progress(self, email: str) -> list[dict[str, object]]:
        document = self.store.find_by_email(normalize_email(email))
        if document is None:
            raise UserNotFound("User not found")

        budgets = document.get("budgets")
        budgets = budgets if isinstance(budgets, Mapping) else {}
        transactions = document.get("transactions")
        spent_map = spent_by_category(transactions if isinstance(transactions, list) else [])

        results: list[dict[str, object]] = []
        for category, limit in budgets.items():
            budget = _as_number(limit)
            spent = spent_map.get(category, 0)
            percentage = 0
            if budget > 0:
                percentage = min(100, math.floor(spent / budget * 100 + 0.5))
            results.append(
                {
                    "category": category,
                    "budget": budget,
                    "spent": spent,
                    "remaining": budget - spent,
                    "percentage": percentage,
                }
            )
        return results


def _as_number(value: object) -> float:
    if is_finite_number(value):
        return value
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return 0
        return parsed if math.isfinite(parsed) else 0
    return 0
