"""
Seed a demo user with one QR code pointing at example.com.

Usage:
  python -m backend.qredirect.scripts.seed

Safe to run repeatedly: users are fetched by email and QR codes by
(user, slug) before anything is inserted.
"""
import logging

from backend.qredirect import auth, resolver
from backend.qredirect.db import ensure_tables, session_scope
from backend.qredirect.logging_utils import configure_logging
from backend.qredirect.namespaces import get_or_create_qr_code, get_or_create_user

logger = logging.getLogger(__name__)

DEMO_EMAIL = "test@example.com"
DEMO_PASSWORD = "password123"
DEMO_SLUG = "test-qr"
DEMO_URL = "https://example.com"


def main():
    configure_logging()
    ensure_tables()
    with session_scope() as db:
        user, created = get_or_create_user(
            db, email=DEMO_EMAIL, name="Test User", hashed_password=auth.get_password_hash(DEMO_PASSWORD)
        )
        logger.info("%s user %s (namespace %s)", "created" if created else "found", user.email, user.namespace)

        qrcode, created = get_or_create_qr_code(db, user, slug=DEMO_SLUG, name="Test QR")
        logger.info("%s QR code %s", "created" if created else "found", qrcode.address)

        if resolver.active_redirect(db, qrcode.id) is None:
            redirect = resolver.set_active_redirect(db, qrcode.id, DEMO_URL)
            logger.info("created redirect to %s", redirect.url)
        return user, qrcode


if __name__ == "__main__":
    main()
