from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from datetime import datetime
from .db import Base


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default="")
    hashed_password = Column(String, nullable=False)
    # Assigned once at registration (or by the backfill script), never changed
    namespace = Column(String, unique=True, index=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    qrcodes = relationship("QRCode", back_populates="owner")


class QRCode(Base):
    __tablename__ = "qrcodes"
    __table_args__ = (
        UniqueConstraint("user_id", "slug", name="uq_qrcodes_user_slug"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slug = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User", back_populates="qrcodes")
    redirects = relationship(
        "Redirect",
        back_populates="qrcode",
        order_by="Redirect.id.desc()",
    )

    @property
    def address(self) -> str:
        return f"{self.owner.namespace}/{self.slug}"


class Redirect(Base):
    __tablename__ = "redirects"
    __table_args__ = (
        # At most one active redirect per QR code, enforced by the database
        Index(
            "uq_redirects_one_active",
            "qrcode_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    qrcode_id = Column(Integer, ForeignKey("qrcodes.id"), nullable=False, index=True)
    url = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    visit_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    qrcode = relationship("QRCode", back_populates="redirects")
