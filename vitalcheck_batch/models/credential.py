"""
ORM model for civil-registry session credentials.
"""

from __future__ import annotations

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vitalcheck_kernel.db.base import TrackedBase


class CredentialTokenModel(TrackedBase):
    """Civil-registry session credential, upserted by the login callback."""

    __tablename__ = "credential_tokens"

    __table_args__ = (
        Index("ix_credential_tokens_status_updated", "status", "updated_at"),
    )

    subject_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    token: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
