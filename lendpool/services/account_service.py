"""Account service: marketplace users and the balances money moves through."""

import logging
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.core.enums import Role
from lendpool.core.exceptions import (
    InsufficientFundsError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from lendpool.db.session import transaction
from lendpool.models.domain.user import User, UserRole
from lendpool.repositories.user_repository import UserRepository
from lendpool.services.amortization import to_money

logger = logging.getLogger(__name__)


class AccountService:
    """
    Account service for users and their balances.

    ``deposit`` and ``withdraw`` are the ledger primitives the lending
    services compose inside their own transactions; they flush but never
    commit. ``deposit_funds`` and ``withdraw_funds`` wrap them in a
    transaction of their own for direct account top-ups and payouts.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the account service.

        Args:
            db: Async database session
        """
        self.db = db
        self.repo = UserRepository(db)

    # ===== Users =====

    async def create_user(
        self,
        username: str,
        first_name: str,
        last_name: str,
        roles: Iterable[Role],
        email: Optional[str] = None,
        account_balance: Any = Decimal("0.00"),
        annual_income: Any = None,
        other_monthly_debt: Any = None,
    ) -> User:
        """
        Register a marketplace user.

        Args:
            username: Unique username
            first_name: First name
            last_name: Last name
            roles: Roles granted to the user
            email: Optional email address
            account_balance: Opening balance, >= 0
            annual_income: Optional annual income
            other_monthly_debt: Optional monthly debt payments

        Returns:
            Created user with roles

        Raises:
            InvalidArgumentError: If the username is taken or data is invalid
        """
        roles = set(roles)
        if not roles:
            raise InvalidArgumentError("At least one role is required")
        balance = to_money(account_balance, "account_balance")
        if balance < 0:
            raise InvalidArgumentError("Account balance must not be negative")

        async with transaction(self.db):
            if await self.repo.get_by_username(username):
                raise InvalidArgumentError(f"Duplicate username: {username}")

            user = User(
                username=username,
                first_name=first_name,
                last_name=last_name,
                email=email,
                account_balance=balance,
                annual_income=to_money(annual_income, "annual_income")
                if annual_income is not None
                else None,
                other_monthly_debt=to_money(other_monthly_debt, "other_monthly_debt")
                if other_monthly_debt is not None
                else None,
                role_links=[UserRole(role=role) for role in sorted(roles, key=lambda r: r.value)],
            )
            self.db.add(user)
            await self.db.flush()

        logger.info(f"Registered user {user.id} with roles {[r.value for r in user.roles]}")
        return user

    async def get_user(self, user_id: int) -> User:
        """
        Retrieve a user by ID.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = await self.repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"No user with id: {user_id}")
        return user

    async def list_users(self, skip: int = 0, limit: int = 100) -> List[User]:
        return await self.repo.get_all(skip=skip, limit=limit, order_by=User.username)

    async def get_balance(self, user_id: int) -> Decimal:
        user = await self.get_user(user_id)
        return user.account_balance

    @staticmethod
    def require_role(user: User, role: Role) -> None:
        """
        Ensure a user holds a role.

        Raises:
            PermissionDeniedError: If the role is missing
        """
        if not user.has_role(role):
            raise PermissionDeniedError(f"User {user.id} does not have the {role.value} role")

    # ===== Ledger primitives =====

    async def deposit(self, user_id: int, amount: Any) -> Decimal:
        """
        Increase a user's balance.

        Runs inside the caller's transaction. There is no deduplication:
        callers must deposit once per economic event.

        Args:
            user_id: ID of the user
            amount: Amount to deposit, > 0

        Returns:
            The new balance

        Raises:
            InvalidArgumentError: If amount is not positive
            NotFoundError: If the user does not exist
        """
        value = self._positive_amount(amount)
        balance = await self.repo.credit(user_id, value)
        if balance is None:
            raise NotFoundError(f"No user with id: {user_id}")
        return balance

    async def withdraw(self, user_id: int, amount: Any) -> Decimal:
        """
        Decrease a user's balance, never below zero.

        Runs inside the caller's transaction.

        Args:
            user_id: ID of the user
            amount: Amount to withdraw, > 0

        Returns:
            The new balance

        Raises:
            InvalidArgumentError: If amount is not positive
            NotFoundError: If the user does not exist
            InsufficientFundsError: If the balance is below amount
        """
        value = self._positive_amount(amount)
        balance = await self.repo.debit(user_id, value)
        if balance is None:
            if not await self.repo.exists(user_id):
                raise NotFoundError(f"No user with id: {user_id}")
            raise InsufficientFundsError(
                f"User {user_id} does not have {value} available to withdraw"
            )
        return balance

    # ===== Standalone account operations =====

    async def deposit_funds(self, user_id: int, amount: Any) -> Decimal:
        """Deposit into an account as a transaction of its own."""
        async with transaction(self.db):
            balance = await self.deposit(user_id, amount)
        logger.info(f"Deposited {to_money(amount)} to user {user_id}")
        return balance

    async def withdraw_funds(self, user_id: int, amount: Any) -> Decimal:
        """Withdraw from an account as a transaction of its own."""
        async with transaction(self.db):
            balance = await self.withdraw(user_id, amount)
        logger.info(f"Withdrew {to_money(amount)} from user {user_id}")
        return balance

    @staticmethod
    def _positive_amount(amount: Any) -> Decimal:
        value = to_money(amount)
        if value <= 0:
            raise InvalidArgumentError("Amount must be greater than 0")
        return value
