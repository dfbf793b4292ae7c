import re

import pytest

from backend.qredirect import models, namespaces
from backend.qredirect.errors import ConflictError, NotFoundError, ValidationError
from backend.qredirect.utils import generate_namespace, is_valid_slug


def test_generate_namespace_is_url_safe_and_unique():
    tokens = {generate_namespace() for _ in range(500)}
    assert len(tokens) == 500
    for token in tokens:
        assert re.fullmatch(r"n[0-9a-z]{24}", token)


def test_generate_namespace_sorts_by_creation_time(monkeypatch):
    monkeypatch.setattr("backend.qredirect.utils.time.time", lambda: 1_700_000_000.0)
    earlier = generate_namespace()
    monkeypatch.setattr("backend.qredirect.utils.time.time", lambda: 1_700_000_001.0)
    later = generate_namespace()
    assert earlier[:10] < later[:10]


@pytest.mark.parametrize("slug,ok", [
    ("my-slug", True),
    ("My_Slug_2", True),
    ("", False),
    ("has space", False),
    ("a/b", False),
    ("ümlaut", False),
    ("my-slug\n", False),
    ("\n", False),
])
def test_is_valid_slug(slug, ok):
    assert is_valid_slug(slug) is ok


def test_register_assigns_namespace(make_user):
    user = make_user()
    assert user.namespace
    assert user.namespace.startswith("n")


def test_register_writes_user_and_namespace_together(db, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("register_user must not assign the namespace in a second step")

    monkeypatch.setattr(namespaces, "assign_namespace", fail)
    user = namespaces.register_user(db, name="Once", email="once@example.com", hashed_password="x")
    db.expire_all()
    stored = db.get(models.User, user.id)
    assert stored.namespace == user.namespace
    assert stored.namespace.startswith("n")


def test_failed_registration_leaves_no_user(db, make_user):
    make_user(email="taken@example.com")
    with pytest.raises(ConflictError):
        namespaces.register_user(db, name="Again", email="taken@example.com", hashed_password="x")
    assert db.query(models.User).filter(models.User.namespace.is_(None)).count() == 0
    assert db.query(models.User).count() == 1


def test_assign_namespace_twice_conflicts(db, make_user):
    user = make_user()
    original = user.namespace
    with pytest.raises(ConflictError):
        namespaces.assign_namespace(db, user)
    db.refresh(user)
    assert user.namespace == original


def test_assign_namespace_does_not_overwrite_stale_object(db, make_user):
    user = make_user()
    original = user.namespace
    # Simulate a caller holding a copy loaded before the namespace was written
    user.namespace = None
    with pytest.raises(ConflictError):
        namespaces.assign_namespace(db, user)
    db.refresh(user)
    assert user.namespace == original


def test_backfill_namespaces_only_touches_missing(db, make_user):
    keep = make_user()
    kept_namespace = keep.namespace
    legacy = [models.User(email=f"old{i}@example.com", name="Old", hashed_password="x") for i in range(3)]
    legacy.append(models.User(email="blank@example.com", name="Blank", hashed_password="x", namespace=""))
    db.add_all(legacy)
    db.commit()

    assert namespaces.backfill_namespaces(db) == 4
    assert namespaces.backfill_namespaces(db) == 0

    users = db.query(models.User).all()
    assert all(u.namespace for u in users)
    assert len({u.namespace for u in users}) == len(users)
    db.refresh(keep)
    assert keep.namespace == kept_namespace


def test_duplicate_email_conflicts(db, make_user):
    make_user(email="dup@example.com")
    with pytest.raises(ConflictError):
        namespaces.register_user(db, name="Again", email="dup@example.com", hashed_password="x")


def test_create_qr_code_returns_namespaced_address(db, make_user):
    user = make_user()
    qrcode, address = namespaces.create_qr_code(db, user, "My Code", "my-slug")
    assert qrcode.id is not None
    assert qrcode.name == "My Code"
    assert address == f"{user.namespace}/my-slug"
    assert qrcode.address == address


def test_same_slug_under_different_users_is_allowed(db, make_user):
    alice, bob = make_user(), make_user()
    qa, address_a = namespaces.create_qr_code(db, alice, "Product", "test-product")
    qb, address_b = namespaces.create_qr_code(db, bob, "Product", "test-product")
    assert qa.id != qb.id
    assert address_a != address_b


def test_same_slug_for_same_user_conflicts(db, make_user):
    user = make_user()
    namespaces.create_qr_code(db, user, "First", "dup")
    with pytest.raises(ConflictError) as excinfo:
        namespaces.create_qr_code(db, user, "Second", "dup")
    assert "already have a QR code with this slug" in excinfo.value.detail
    assert db.query(models.QRCode).count() == 1


@pytest.mark.parametrize("slug", ["has space", "a/b", "", "semi;colon", "my-slug\n", "\n"])
def test_invalid_slug_rejected_before_any_write(db, make_user, slug):
    user = make_user()
    with pytest.raises(ValidationError):
        namespaces.create_qr_code(db, user, "Name", slug)
    assert db.query(models.QRCode).count() == 0


def test_blank_name_rejected(db, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        namespaces.create_qr_code(db, user, "   ", "ok-slug")


def test_create_qr_code_backfills_missing_namespace(db):
    user = models.User(email="legacy@example.com", name="Legacy", hashed_password="x")
    db.add(user)
    db.commit()
    _, address = namespaces.create_qr_code(db, user, "Legacy", "legacy")
    db.refresh(user)
    assert user.namespace
    assert address == f"{user.namespace}/legacy"


def test_get_owned_qr_code_is_owner_scoped(db, make_user):
    alice, bob = make_user(), make_user()
    qrcode, _ = namespaces.create_qr_code(db, alice, "Mine", "mine")
    assert namespaces.get_owned_qr_code(db, alice, qrcode.id).id == qrcode.id
    with pytest.raises(NotFoundError):
        namespaces.get_owned_qr_code(db, bob, qrcode.id)


def test_list_qr_codes_newest_first(db, make_user):
    user = make_user()
    for slug in ("one", "two", "three"):
        namespaces.create_qr_code(db, user, slug.title(), slug)
    assert [q.slug for q in namespaces.list_qr_codes(db, user)] == ["three", "two", "one"]


def test_get_or_create_is_keyed_on_unique_fields(db):
    user, created = namespaces.get_or_create_user(db, "seed@example.com", "Seed", "x")
    again, created_again = namespaces.get_or_create_user(db, "seed@example.com", "Other name", "y")
    assert created and not created_again
    assert again.id == user.id

    qrcode, created = namespaces.get_or_create_qr_code(db, user, "seed", "Seed")
    same, created_again = namespaces.get_or_create_qr_code(db, user, "seed", "Renamed")
    assert created and not created_again
    assert same.id == qrcode.id
    assert same.name == "Seed"
