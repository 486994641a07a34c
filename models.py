from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class UserRecord(Base):
    """One persisted user document.

    ``position`` keeps the collection in registration order; the document
    itself is stored as-is so fields the backend does not interpret
    (reports, settings, anything a client adds) survive untouched.
    """

    __tablename__ = "users"

    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
