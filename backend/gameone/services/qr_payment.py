"""
Bank-transfer payment instructions.

Builds the Short Payment Descriptor (SPD) string that banking apps in
Slovakia and Czechia scan from a QR code:

    SPD*1.0*ACC:SK3112000000198742637541+TATRSKBX*AM:50.00*CC:EUR*X-VS:4829104473*MSG:Summer Cup - 2 participants

Rendering the string into an image happens outside this service.
"""

import secrets
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.config import get_settings
from gameone.core.exceptions import ConcurrencyConflictError
from gameone.core.logging import get_logger
from gameone.models.bank_account import BankAccount
from gameone.models.event import Event
from gameone.models.pending_payment import PendingPayment

logger = get_logger(__name__)
settings = get_settings()

SPD_HEADER = "SPD*1.0"
MAX_SYMBOL_ATTEMPTS = 5

CENT = Decimal("0.01")


def format_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP))


def _spd_value(text: str) -> str:
    # '*' separates SPD fields and may not appear inside a value
    return text.replace("*", "%2A").strip()


def build_payment_string(
    iban: str,
    amount: Decimal,
    currency: str,
    variable_symbol: str,
    message: str,
    swift: Optional[str] = None,
) -> str:
    account = iban.replace(" ", "").upper()
    if swift:
        account = f"{account}+{swift.upper()}"
    message = _spd_value(message)[: settings.QR_MESSAGE_MAX_LENGTH]
    fields = [
        SPD_HEADER,
        f"ACC:{account}",
        f"AM:{format_amount(amount)}",
        f"CC:{currency.upper()}",
        f"X-VS:{variable_symbol}",
        f"MSG:{message}",
    ]
    return "*".join(fields)


def describe_payment(event: Event, participant_count: int) -> str:
    if participant_count == 1:
        return event.title
    return f"{event.title} - {participant_count} participants"


def _random_symbol() -> str:
    digits = settings.VARIABLE_SYMBOL_DIGITS
    # Leading digit is never zero so the symbol survives numeric parsing by banks
    return str(secrets.randbelow(9 * 10 ** (digits - 1)) + 10 ** (digits - 1))


async def generate_variable_symbol(db: AsyncSession) -> str:
    """
    Draw a variable symbol not used by any pending payment.

    The unique constraint on pending_payments.variable_symbol is the final
    guard; a collision there surfaces as a conflict and the whole
    transaction is retried with a fresh symbol.
    """
    for attempt in range(1, MAX_SYMBOL_ATTEMPTS + 1):
        symbol = _random_symbol()
        taken = await db.execute(
            select(PendingPayment.id).where(PendingPayment.variable_symbol == symbol)
        )
        if taken.scalar_one_or_none() is None:
            return symbol
        logger.info("variable_symbol_collision", attempt=attempt)
    raise ConcurrencyConflictError("Could not allocate a unique variable symbol")


async def resolve_bank_account(db: AsyncSession, event: Event) -> Optional[BankAccount]:
    """The event's own account, else the active default account."""
    if event.bank_account_id is not None:
        result = await db.execute(
            select(BankAccount).where(
                BankAccount.id == event.bank_account_id,
                BankAccount.is_active.is_(True),
            )
        )
        account = result.scalar_one_or_none()
        if account:
            return account

    result = await db.execute(
        select(BankAccount)
        .where(BankAccount.is_default.is_(True), BankAccount.is_active.is_(True))
        .order_by(BankAccount.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()
