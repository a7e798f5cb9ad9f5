from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class RedemptionCode(SQLModel, table=True):
    __tablename__ = "qrs"

    # embedded in the printed QR, also the lookup key
    id: str = Field(primary_key=True)

    # naive UTC throughout; the column type is pinned so newer sqlmodel
    # releases do not swap in a tz-required DateTime
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=False), nullable=False, index=True),
    )

    # all three are set together by the claim flow, never cleared
    used_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=False), nullable=True),
    )
    used_by: Optional[str] = None
    transaction_id: Optional[str] = None

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def to_item(self) -> dict:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "used_at": self.used_at.isoformat() if self.used_at else None,
            "used_by": self.used_by,
            "transaction_id": self.transaction_id,
        }
