from __future__ import annotations

import pytest

from chaos_rig.contacts import ContactStore


def test_seeded_on_open() -> None:
    store = ContactStore()
    assert [contact.id for contact in store.list_all()] == [1, 2, 3]


def test_create_and_get() -> None:
    store = ContactStore()
    contact = store.create("Dan Brown", "dan@example.com", company="Hooli")
    assert contact.id == 4
    assert store.get(4) == contact
    assert contact.notes == ""


def test_search_is_case_insensitive() -> None:
    store = ContactStore()
    assert [contact.name for contact in store.search("ACME")] == ["Alice Johnson"]
    assert [contact.name for contact in store.search("alice")] == ["Alice Johnson", "Bob Smith"]


def test_update_field() -> None:
    store = ContactStore()
    updated = store.update_field(2, "email", "bob@new.com")
    assert updated is not None
    assert updated.email == "bob@new.com"
    assert store.update_field(42, "email", "x") is None


def test_update_field_rejects_unknown_column() -> None:
    with pytest.raises(ValueError):
        ContactStore().update_field(1, "id", "5")  # type: ignore[arg-type]


def test_delete() -> None:
    store = ContactStore()
    assert store.delete(1) is True
    assert store.delete(1) is False
    assert store.get(1) is None


def test_reset_restores_seed_and_ids() -> None:
    store = ContactStore()
    store.delete(1)
    store.create("Dan", "dan@example.com")
    store.reset()
    assert [(contact.id, contact.name) for contact in store.list_all()] == [
        (1, "Alice Johnson"),
        (2, "Bob Smith"),
        (3, "Carol White"),
    ]


def test_file_database_persists(tmp_path) -> None:
    path = str(tmp_path / "contacts.db")
    store = ContactStore(path)
    store.create("Dan", "dan@example.com")
    store.close()
    reopened = ContactStore(path)
    assert len(reopened.list_all()) == 4
    reopened.close()
