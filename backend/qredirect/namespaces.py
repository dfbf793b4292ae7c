"""Namespace and slug allocation.

Every user owns one opaque ``namespace`` token. QR code slugs are unique per
user only, so ``"{namespace}/{slug}"`` is the globally unique address of a QR
code.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .errors import ConflictError, NotFoundError, ValidationError, storage_errors
from .utils import generate_namespace, is_valid_slug

logger = logging.getLogger(__name__)


def assign_namespace(db: Session, user: models.User, namespace: Optional[str] = None) -> str:
    """Store a namespace on ``user`` exactly once.

    The write is a conditional UPDATE, so two racing calls cannot both
    succeed. Raises ``ConflictError`` when the user already has one.
    """
    if user.namespace:
        raise ConflictError("User already has a namespace", context={"user_id": user.id})

    namespace = namespace or generate_namespace()
    with storage_errors(db, "assign namespace"):
        try:
            result = db.execute(
                update(models.User)
                .where(models.User.id == user.id)
                .where(or_(models.User.namespace.is_(None), models.User.namespace == ""))
                .values(namespace=namespace)
            )
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("Namespace is already taken", context={"namespace": namespace}) from e
        if result.rowcount == 0:
            db.rollback()
            raise ConflictError("User already has a namespace", context={"user_id": user.id})
        db.commit()

    db.refresh(user)
    logger.info("assigned namespace %s to user %s", namespace, user.id)
    return namespace


def register_user(db: Session, name: str, email: str, hashed_password: str) -> models.User:
    """Create a user with its namespace in a single commit."""
    with storage_errors(db, "register user"):
        if db.query(models.User).filter(models.User.email == email).first():
            raise ConflictError("Email already in use")
        user = models.User(name=name, email=email, hashed_password=hashed_password,
                           namespace=generate_namespace())
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("Email already in use") from e
        db.refresh(user)

    logger.info("registered user %s with namespace %s", user.id, user.namespace)
    return user


def backfill_namespaces(db: Session) -> int:
    """Give every user without a namespace a fresh one. Returns how many were updated."""
    with storage_errors(db, "list users without namespace"):
        users = (
            db.query(models.User)
            .filter(or_(models.User.namespace.is_(None), models.User.namespace == ""))
            .order_by(models.User.id)
            .all()
        )

    updated = 0
    for user in users:
        try:
            assign_namespace(db, user)
        except ConflictError:
            # Another process got there first
            logger.info("user %s already has a namespace, skipping", user.id)
            continue
        updated += 1
    logger.info("namespace backfill updated %d of %d users", updated, len(users))
    return updated


def create_qr_code(db: Session, user: models.User, name: str, slug: str) -> Tuple[models.QRCode, str]:
    """Create a QR code for ``user`` and return it with its ``namespace/slug`` address."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", context={"field": "name"})
    if not is_valid_slug(slug):
        raise ValidationError(
            "Slug can only contain letters, numbers, hyphens, and underscores",
            context={"field": "slug"},
        )

    if not user.namespace:
        # Account predates namespaces and the backfill has not run yet
        assign_namespace(db, user)

    with storage_errors(db, "create QR code"):
        existing = (
            db.query(models.QRCode)
            .filter(models.QRCode.user_id == user.id, models.QRCode.slug == slug)
            .first()
        )
        if existing:
            raise ConflictError("You already have a QR code with this slug", context={"slug": slug})

        qrcode = models.QRCode(user_id=user.id, name=name, slug=slug)
        db.add(qrcode)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("You already have a QR code with this slug", context={"slug": slug}) from e
        db.refresh(qrcode)

    address = f"{user.namespace}/{slug}"
    logger.info("created QR code %s at %s", qrcode.id, address)
    return qrcode, address


def get_owned_qr_code(db: Session, user: models.User, qrcode_id: int) -> models.QRCode:
    with storage_errors(db, "load QR code"):
        qrcode = (
            db.query(models.QRCode)
            .filter(models.QRCode.id == qrcode_id, models.QRCode.user_id == user.id)
            .first()
        )
    if not qrcode:
        raise NotFoundError("QR code not found", context={"id": qrcode_id})
    return qrcode


def list_qr_codes(db: Session, user: models.User) -> List[models.QRCode]:
    with storage_errors(db, "list QR codes"):
        return (
            db.query(models.QRCode)
            .filter(models.QRCode.user_id == user.id)
            .order_by(models.QRCode.created_at.desc(), models.QRCode.id.desc())
            .all()
        )


def get_or_create_user(db: Session, email: str, name: str, hashed_password: str) -> Tuple[models.User, bool]:
    """Insert-or-fetch keyed on ``email``. Returns ``(user, created)``."""
    with storage_errors(db, "load user"):
        user = db.query(models.User).filter(models.User.email == email).first()
    if user:
        if not user.namespace:
            assign_namespace(db, user)
        return user, False
    return register_user(db, name, email, hashed_password), True


def get_or_create_qr_code(db: Session, user: models.User, slug: str, name: str) -> Tuple[models.QRCode, bool]:
    """Insert-or-fetch keyed on ``(user_id, slug)``. Returns ``(qrcode, created)``."""
    with storage_errors(db, "load QR code"):
        qrcode = (
            db.query(models.QRCode)
            .filter(models.QRCode.user_id == user.id, models.QRCode.slug == slug)
            .first()
        )
    if qrcode:
        return qrcode, False
    qrcode, _ = create_qr_code(db, user, name, slug)
    return qrcode, True
