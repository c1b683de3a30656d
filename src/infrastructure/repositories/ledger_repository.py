# src/infrastructure/repositories/ledger_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import PaymentLedgerEntry


class LedgerRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_external_id(
        self,
        external_transaction_id: str,
    ) -> PaymentLedgerEntry | None:

        stmt = select(PaymentLedgerEntry).where(
            PaymentLedgerEntry.external_transaction_id == external_transaction_id
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def insert(self, entry: PaymentLedgerEntry) -> PaymentLedgerEntry:
        # Flushing here hits the unique index before any other write,
        # so a concurrent duplicate fails with IntegrityError.
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for_user(self, user_email: str) -> list[PaymentLedgerEntry]:
        stmt = (
            select(PaymentLedgerEntry)
            .where(PaymentLedgerEntry.user_email == user_email)
            .order_by(PaymentLedgerEntry.settled_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_vendor(self, vendor_email: str) -> list[PaymentLedgerEntry]:
        stmt = (
            select(PaymentLedgerEntry)
            .where(PaymentLedgerEntry.vendor_email == vendor_email)
            .order_by(PaymentLedgerEntry.settled_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())
