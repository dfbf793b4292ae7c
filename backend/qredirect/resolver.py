"""Redirect resolution and the active-redirect switch.

Each function is one unit of work against the session it is given. Nothing
here retries; wrap calls in :func:`backend.qredirect.retry.retry` if needed.
"""
import logging
import os
from typing import List, Optional, Union

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .errors import ConflictError, NotFoundError, NotFoundFallback, ValidationError, storage_errors
from .schemas import validate_destination_url

logger = logging.getLogger(__name__)


def get_fallback_url() -> str:
    return os.getenv("FALLBACK_URL", "/")


def active_redirect(db: Session, qrcode_id: int) -> Optional[models.Redirect]:
    """The most recently created active redirect of a QR code, if any."""
    return (
        db.query(models.Redirect)
        .filter(models.Redirect.qrcode_id == qrcode_id, models.Redirect.is_active.is_(True))
        .order_by(models.Redirect.created_at.desc(), models.Redirect.id.desc())
        .first()
    )


def find_qr_code(db: Session, slug: str, namespace: Optional[str] = None) -> Optional[models.QRCode]:
    """Look up a QR code by ``namespace/slug``, or by bare slug.

    A bare slug only matches when no two users share it, since slugs are
    unique per namespace only.
    """
    query = db.query(models.QRCode).filter(models.QRCode.slug == slug)
    if namespace is not None:
        return query.join(models.User).filter(models.User.namespace == namespace).first()

    matches = query.limit(2).all()
    if len(matches) > 1:
        logger.warning("bare slug %r is used in more than one namespace", slug)
        return None
    return matches[0] if matches else None


def resolve(db: Session, slug: str, namespace: Optional[str] = None) -> Union[str, NotFoundFallback]:
    """Return the destination for a scan and count the visit.

    Misses return a :class:`NotFoundFallback` instead of raising.
    Datastore failures raise ``StorageError``.
    """
    with storage_errors(db, "resolve redirect"):
        qrcode = find_qr_code(db, slug, namespace)
        if not qrcode:
            logger.info("no QR code for %s/%s", namespace or "-", slug)
            return NotFoundFallback(url=get_fallback_url(), reason="unknown_slug")

        # A switch can commit between the lookup and the increment; look again once
        for _ in range(2):
            redirect = active_redirect(db, qrcode.id)
            if not redirect:
                logger.info("QR code %s has no active redirect", qrcode.id)
                return NotFoundFallback(url=get_fallback_url(), reason="no_active_redirect")

            destination = redirect.url
            # Relative increment so concurrent scans never lose a count
            result = db.execute(
                update(models.Redirect)
                .where(models.Redirect.id == redirect.id, models.Redirect.is_active.is_(True))
                .values(visit_count=models.Redirect.visit_count + 1)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            db.expire(redirect)
            if result.rowcount == 1:
                logger.debug("resolved QR code %s to redirect %s", qrcode.id, redirect.id)
                return destination

    logger.warning("QR code %s kept switching redirects during resolution", qrcode.id)
    return NotFoundFallback(url=get_fallback_url(), reason="no_active_redirect")


def set_active_redirect(db: Session, qrcode_id: int, url: str) -> models.Redirect:
    """Point a QR code at ``url``.

    Deactivating the old redirects and inserting the new one commit together,
    so readers see either the old active redirect or the new one.
    """
    try:
        url = validate_destination_url(url)
    except ValueError as e:
        raise ValidationError(str(e), context={"field": "url"}) from e

    with storage_errors(db, "set active redirect"):
        if db.get(models.QRCode, qrcode_id) is None:
            raise NotFoundError("QR code not found", context={"id": qrcode_id})

        db.execute(
            update(models.Redirect)
            .where(models.Redirect.qrcode_id == qrcode_id, models.Redirect.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        redirect = models.Redirect(qrcode_id=qrcode_id, url=url, is_active=True, visit_count=0)
        db.add(redirect)
        try:
            db.commit()
        except IntegrityError as e:
            # Lost a race with another switch on the same QR code
            db.rollback()
            raise ConflictError("Redirect was changed concurrently, try again",
                                context={"id": qrcode_id}) from e
        db.refresh(redirect)

    logger.info("QR code %s now redirects to %s (redirect %s)", qrcode_id, url, redirect.id)
    return redirect


def list_redirects(db: Session, qrcode_id: int) -> List[models.Redirect]:
    """Redirect history of a QR code, newest first."""
    with storage_errors(db, "list redirects"):
        return (
            db.query(models.Redirect)
            .filter(models.Redirect.qrcode_id == qrcode_id)
            .order_by(models.Redirect.created_at.desc(), models.Redirect.id.desc())
            .all()
        )


def total_visits(db: Session, qrcode_id: int) -> int:
    """Visits counted over the whole redirect history of a QR code."""
    with storage_errors(db, "count visits"):
        total = (
            db.query(func.sum(models.Redirect.visit_count))
            .filter(models.Redirect.qrcode_id == qrcode_id)
            .scalar()
        )
    return total or 0
