"""
Give every existing user without a namespace a unique one.

Run once after upgrading a database created before namespaces existed:
  python -m backend.qredirect.scripts.add_namespaces
"""
import logging

from backend.qredirect.db import ensure_tables, session_scope
from backend.qredirect.logging_utils import configure_logging
from backend.qredirect.namespaces import backfill_namespaces

logger = logging.getLogger(__name__)


def main() -> int:
    configure_logging()
    ensure_tables()
    with session_scope() as db:
        updated = backfill_namespaces(db)
    logger.info("added namespaces to %d users", updated)
    return updated


if __name__ == "__main__":
    main()
