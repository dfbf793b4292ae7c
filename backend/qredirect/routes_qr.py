import os
from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional

from . import schemas, models, namespaces, resolver
from .auth import get_current_user
from .db import get_db
from .errors import ValidationError, storage_errors
from .qr_image import MEDIA_TYPES, ImageOptions, get_logo_path, render

router = APIRouter(prefix="/api/qrcodes", tags=["qrcodes"])


def public_base_url(request: Request) -> str:
    return (os.getenv("BASE_URL") or str(request.base_url)).rstrip("/")


def qr_out(db: Session, q: models.QRCode, address: Optional[str] = None) -> schemas.QROut:
    with storage_errors(db, "load QR code"):
        active = resolver.active_redirect(db, q.id)
        address = address or q.address
    return schemas.QROut(
        id=q.id,
        name=q.name,
        slug=q.slug,
        address=address,
        created_at=q.created_at,
        active_redirect=schemas.RedirectOut.model_validate(active) if active else None,
        total_visits=resolver.total_visits(db, q.id),
    )


@router.post("/", response_model=schemas.QROut, status_code=status.HTTP_201_CREATED)
def create_qr(data: schemas.QRCreate, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    q, address = namespaces.create_qr_code(db, user, name=data.name, slug=data.slug)
    return qr_out(db, q, address)


@router.get("/", response_model=schemas.QRList)
def list_qrcodes(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """QR codes of the caller, newest first, each with its active redirect."""
    items = [qr_out(db, q) for q in namespaces.list_qr_codes(db, user)]
    return {"total": len(items), "items": items}


@router.get("/{qrcode_id}", response_model=schemas.QROut)
def get_qr(qrcode_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    q = namespaces.get_owned_qr_code(db, user, qrcode_id)
    return qr_out(db, q)


@router.get("/{qrcode_id}/redirects", response_model=List[schemas.RedirectOut])
def list_redirects(qrcode_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    q = namespaces.get_owned_qr_code(db, user, qrcode_id)
    return resolver.list_redirects(db, q.id)


@router.post("/{qrcode_id}/redirects", response_model=schemas.RedirectOut, status_code=status.HTTP_201_CREATED)
def create_redirect(
    qrcode_id: int,
    data: schemas.RedirectCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    q = namespaces.get_owned_qr_code(db, user, qrcode_id)
    return resolver.set_active_redirect(db, q.id, data.url)


@router.get("/{qrcode_id}/download")
def download_image(
    qrcode_id: int,
    request: Request,
    format: str = Query("png", pattern="^(png|svg)$"),
    size: int = Query(500, ge=50, le=2000),
    dark: str = Query("#000000"),
    light: str = Query("#ffffff"),
    border: int = Query(1, ge=0, le=10),
    logo: bool = Query(False),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    q = namespaces.get_owned_qr_code(db, user, qrcode_id)
    # The image always encodes the public, namespaced address, never internal ids
    address = f"{public_base_url(request)}/r/{q.address}"
    logo_path = get_logo_path() if logo else None
    if logo and not logo_path:
        raise ValidationError("No logo is configured for QR images", context={"field": "logo"})
    options = ImageOptions(format=format, size=size, dark=dark, light=light, border=border, logo_path=logo_path)
    content = render(address, options)
    return Response(
        content=content,
        media_type=MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="qrcode-{q.slug}.{format}"'},
    )
