import json

import pytest
from sqlalchemy import inspect

from config import Settings
from database import build_engine
from store import JsonFileUserStore, SqlUserStore, StoreUnavailable, build_store


def _doc(email: str, **extra) -> dict:
    document = {"name": email.split("@")[0], "email": email, "password": "h"}
    document.update(extra)
    return document


def test_load_initialises_missing_store(store) -> None:
    assert store.load() == []
    assert store.load() == []


def test_missing_file_is_created_empty_on_load(tmp_path) -> None:
    path = tmp_path / "nested" / "users.json"
    store = JsonFileUserStore(path)

    assert store.load() == []
    assert json.loads(path.read_text(encoding="utf-8")) == []


def test_sql_load_creates_users_table(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'finance.db'}")
    store = SqlUserStore(engine)

    assert store.load() == []
    assert inspect(engine).has_table("users")


def test_replace_all_overwrites_and_keeps_order(store) -> None:
    store.replace_all([_doc("b@x.com"), _doc("a@x.com")])
    store.replace_all([_doc("c@x.com"), _doc("a@x.com", budgets={"Food": 10})])

    documents = store.load()
    assert [d["email"] for d in documents] == ["c@x.com", "a@x.com"]
    assert documents[1]["budgets"] == {"Food": 10}


def test_find_by_email_is_exact_match(store) -> None:
    store.replace_all([_doc("ann@x.com")])

    assert store.find_by_email("ann@x.com")["name"] == "ann"
    assert store.find_by_email("Ann@X.com") is None
    assert store.find_by_email("bob@x.com") is None


def test_insert_appends_document(store) -> None:
    store.insert(_doc("a@x.com"))
    store.insert(_doc("b@x.com"))

    assert [d["email"] for d in store.load()] == ["a@x.com", "b@x.com"]


def test_loaded_documents_are_detached_from_store(store) -> None:
    store.replace_all([_doc("a@x.com", transactions=[])])

    loaded = store.load()
    loaded[0]["transactions"].append({"amount": 1})

    assert store.load()[0]["transactions"] == []


def test_corrupt_file_raises_store_unavailable(tmp_path) -> None:
    path = tmp_path / "users.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StoreUnavailable):
        JsonFileUserStore(path).load()


def test_non_list_file_raises_store_unavailable(tmp_path) -> None:
    path = tmp_path / "users.json"
    path.write_text('{"email": "a@x.com"}', encoding="utf-8")

    with pytest.raises(StoreUnavailable):
        JsonFileUserStore(path).load()


def test_unreadable_path_raises_store_unavailable(tmp_path) -> None:
    # a directory where the file should be
    path = tmp_path / "users.json"
    path.mkdir()

    with pytest.raises(StoreUnavailable):
        JsonFileUserStore(path).load()


def test_sql_duplicate_emails_are_rejected(tmp_path) -> None:
    store = SqlUserStore(build_engine(f"sqlite:///{tmp_path / 'finance.db'}"))
    store.replace_all([_doc("a@x.com")])

    with pytest.raises(StoreUnavailable):
        store.replace_all([_doc("a@x.com"), _doc("a@x.com")])

    assert [d["email"] for d in store.load()] == ["a@x.com"]


def _settings(tmp_path, backend: str) -> Settings:
    return Settings(
        data_dir=tmp_path,
        store_backend=backend,
        users_file=tmp_path / "users.json",
        database_url=f"sqlite:///{tmp_path / 'finance.db'}",
        timezone="UTC",
        bcrypt_rounds=4,
        cors_origins=[],
        log_level="INFO",
    )


def test_build_store_selects_backend(tmp_path) -> None:
    assert isinstance(build_store(_settings(tmp_path, "file")), JsonFileUserStore)
    assert isinstance(build_store(_settings(tmp_path, "sql")), SqlUserStore)
    with pytest.raises(ValueError):
        build_store(_settings(tmp_path, "mongo"))
