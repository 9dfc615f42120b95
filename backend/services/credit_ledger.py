"""Credit ledger — the user's spendable credit balance.

The balance is the only shared mutable state touched by AI generation, and
several API instances may debit it concurrently, so the check and the
decrement are one conditional UPDATE executed by the database rather than
a read-modify-write guarded by an in-process lock.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InsufficientCreditsError, NotFoundError
from db.models.user import User

logger = logging.getLogger(__name__)


class CreditLedger:
    """Read, check, debit and top up user credit balances."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balance(self, user_id: str) -> int:
        """Current balance of a user.

        Raises:
            NotFoundError: If the user does not exist
        """
        result = await self.db.execute(select(User.credits).where(User.id == user_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError("User not found")
        return balance

    async def ensure_balance(self, user_id: str, amount: int) -> int:
        """Fast-fail pre-check before spending effort on a paid operation.

        Not a reservation: the debit re-checks atomically.

        Raises:
            InsufficientCreditsError: If the balance is below ``amount``
        """
        balance = await self.get_balance(user_id)
        if balance < amount:
            raise InsufficientCreditsError(required=amount, available=balance)
        return balance

    async def debit(self, user_id: str, amount: int) -> int:
        """Atomically subtract ``amount`` and return the new balance.

        Raises:
            ValueError: If amount is not positive
            InsufficientCreditsError: If the balance is below ``amount`` at debit time
            NotFoundError: If the user does not exist
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.credits >= amount)
            .values(credits=User.credits - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = await self.get_balance(user_id)
            raise InsufficientCreditsError(required=amount, available=available)

        balance = await self.get_balance(user_id)
        logger.info(f"Debited {amount} credits from user {user_id}, remaining {balance}")
        return balance

    async def credit(self, user_id: str, amount: int) -> int:
        """Add ``amount`` to the balance (credit purchases) and return the new balance.

        Raises:
            ValueError: If amount is not positive
            NotFoundError: If the user does not exist
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(credits=User.credits + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("User not found")

        balance = await self.get_balance(user_id)
        logger.info(f"Credited {amount} credits to user {user_id}, balance {balance}")
        return balance
