import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette.responses import RedirectResponse

from . import resolver
from .db import get_db
from .errors import NotFoundFallback, StorageError
from .retry import retry

router = APIRouter(tags=["redirect"])
logger = logging.getLogger(__name__)


def _is_storage_error(error: Exception) -> bool:
    return isinstance(error, StorageError)


def _redirect(db: Session, slug: str, namespace: str = None) -> RedirectResponse:
    try:
        target = retry(
            lambda: resolver.resolve(db, slug, namespace),
            max_attempts=2,
            initial_delay=0.05,
            should_retry=_is_storage_error,
        )
    except StorageError:
        # Scanning a code should never show a raw error page
        logger.error("resolving %s/%s failed, sending visitor to fallback", namespace or "-", slug)
        target = NotFoundFallback(url=resolver.get_fallback_url(), reason="storage_error")

    if isinstance(target, NotFoundFallback):
        return RedirectResponse(url=target.url, status_code=302)
    return RedirectResponse(url=target, status_code=302)


@router.get("/r/{namespace}/{slug}")
def redirect_namespaced(namespace: str, slug: str, db: Session = Depends(get_db)):
    return _redirect(db, slug, namespace)


@router.get("/r/{slug}")
def redirect_slug(slug: str, db: Session = Depends(get_db)):
    """Legacy links without a namespace; only unambiguous slugs resolve."""
    return _redirect(db, slug)
