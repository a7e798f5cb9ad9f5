"""Durable one-time-use state for redemption codes.

Every method opens its own short session. The only write that matters for
concurrency is ``mark_used``: a single guarded UPDATE, so exactly one caller
wins per code even across processes sharing the same database.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .models import RedemptionCode

logger = logging.getLogger(__name__)


class StoreUnavailable(RuntimeError):
    """The backing database could not be reached or rejected the statement."""


class RedemptionStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create(self, code_id: str, created_at: datetime) -> bool:
        """Insert a new unused code. Returns False if the id already exists."""
        try:
            with Session(self.engine) as session:
                session.add(RedemptionCode(id=code_id, created_at=created_at))
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    return False
                return True
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"create failed for {code_id}: {e}") from e

    def get(self, code_id: str) -> Optional[RedemptionCode]:
        try:
            with Session(self.engine) as session:
                return session.get(RedemptionCode, code_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"get failed for {code_id}: {e}") from e

    def list(self, limit: int) -> List[RedemptionCode]:
        try:
            with Session(self.engine) as session:
                stmt = (
                    select(RedemptionCode)
                    .order_by(RedemptionCode.created_at.desc(), RedemptionCode.id)
                    .limit(limit)
                )
                return list(session.exec(stmt).all())
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"list failed: {e}") from e

    def all(self) -> List[RedemptionCode]:
        try:
            with Session(self.engine) as session:
                stmt = select(RedemptionCode).order_by(
                    RedemptionCode.created_at, RedemptionCode.id
                )
                return list(session.exec(stmt).all())
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"export failed: {e}") from e

    def mark_used(
        self,
        code_id: str,
        used_at: datetime,
        used_by: str,
        transaction_id: str,
    ) -> bool:
        """Consume the code if it is still unused.

        Returns True only for the caller whose UPDATE changed the row.
        """
        stmt = (
            update(RedemptionCode)
            .where(RedemptionCode.id == code_id)
            .where(RedemptionCode.used_at.is_(None))
            .values(used_at=used_at, used_by=used_by, transaction_id=transaction_id)
        )
        try:
            with Session(self.engine) as session:
                result = session.exec(stmt)
                session.commit()
                changed = result.rowcount == 1
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"mark_used failed for {code_id}: {e}") from e

        if not changed:
            logger.info("mark_used lost for %s (missing or already used)", code_id)
        return changed
