"""
Bank account that receives transfers for an event.

The IBAN and SWIFT end up in the QR payment-instruction string; an event
without its own account falls back to the active default account.
"""

from sqlalchemy import Boolean, Column, Integer, String

from gameone.db.base import Base, TimestampMixin


class BankAccount(Base, TimestampMixin):
    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    bank_name = Column(String(255), nullable=True)
    iban = Column(String(34), unique=True, nullable=False)
    swift = Column(String(11), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    qr_code_enabled = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<BankAccount(id={self.id}, iban={self.iban})>"
