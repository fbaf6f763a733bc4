"""CashFlow Commander service - main orchestration layer."""
from datetime import datetime
import math
from pathlib import Path
from typing import List, Dict, Any, Optional, Callable
import logging

from cashflow_commander.config import (
    DB_PATH,
    DAY_MS,
    ACCOUNT_TYPES,
    TRANSACTION_TYPES,
    BUDGET_PERIODS,
    ROLES,
    ROLE_USER,
    ROLE_FOUNDER,
    CAP_MANAGE_BADGES,
    CAP_LIST_USERS,
    FOUNDER_USER_IDS,
    FOUNDER_BADGE,
    DEFAULT_CATEGORIES,
    TRANSACTIONS_LIST_LIMIT,
    CATEGORY_BREAKDOWN_DAYS,
    INSIGHTS_LIST_LIMIT,
    USERNAME_MIN_LENGTH,
    USERNAME_MAX_LENGTH,
    BIO_MAX_LENGTH,
    MAX_PROFILE_PICTURE_URL_LENGTH,
    PROFILE_PICTURE_URL_PREFIXES,
    ensure_data_dir
)
from cashflow_commander.db.sqlite_store import SQLiteStore
from cashflow_commander.api.identity import Identity, require_identity
from cashflow_commander.api.errors import (
    NotFoundError,
    InvalidFieldError,
    ForbiddenError,
    ConflictError,
)
from cashflow_commander.intelligence.budget_tracker import (
    period_bounds,
    month_bounds,
    summarize_budget,
    to_epoch_ms,
)
from cashflow_commander.intelligence.insights_generator import InsightsGenerator
from cashflow_commander.intelligence.insight_types import parse_insight_data


logger = logging.getLogger(__name__)


def _require_choice(field: str, value: str, choices: List[str]) -> None:
    if value not in choices:
        raise InvalidFieldError(f"Invalid {field}. Must be one of: {choices}")


def _require_finite(field: str, value: float) -> None:
    if not math.isfinite(value):
        raise InvalidFieldError(f"{field} must be a finite number")


def _require_non_negative(field: str, value: float) -> None:
    _require_finite(field, value)
    if value < 0:
        raise InvalidFieldError(f"{field} cannot be negative")


class CashflowService:
    """Main service for CashFlow Commander.

    Every per-user operation takes the caller's ``Identity`` (or ``None`` for
    an anonymous caller). Reads degrade to empty results for anonymous
    callers; writes raise ``NotAuthenticatedError``.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """Initialize the service.

        Args:
            db_path: Path to SQLite database (default: ~/.cashflow_commander/cashflow.db)
            clock: Returns the current local time (default: datetime.now)
        """
        if db_path is None:
            ensure_data_dir()
            DB_PATH.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path or DB_PATH
        self.clock = clock or datetime.now

        self.store = SQLiteStore(self.db_path)
        self.insights_generator = InsightsGenerator(self.store)

    def close(self):
        """Close all connections."""
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def now_ms(self) -> int:
        """Current time in epoch milliseconds."""
        return to_epoch_ms(self.clock())

    # === Identity ===

    def resolve_identity(self, user_id: Optional[str]) -> Optional[Identity]:
        """Turn a provider user id into an Identity, registering new users.

        Users listed in CASHFLOW_FOUNDER_USER_IDS start with the founder role.
        """
        if not user_id:
            return None

        user = self.store.get_user(user_id)
        if user is None:
            role = ROLE_FOUNDER if user_id in FOUNDER_USER_IDS else ROLE_USER
            if self.store.add_user(user_id, role, self.now_ms()):
                logger.info(f"Registered user {user_id} with role '{role}'")
            user = self.store.get_user(user_id)

        return Identity(user_id=user["id"], role=user["role"])

    def set_user_role(self, user_id: str, role: str) -> Dict[str, Any]:
        """Assign a role to a user, registering the user if needed."""
        _require_choice("role", role, ROLES)
        self.resolve_identity(user_id)
        self.store.update_user_role(user_id, role)
        logger.info(f"Set role of user {user_id} to '{role}'")
        return self.store.get_user(user_id)

    def get_current_user(self, identity: Optional[Identity]) -> Optional[Dict[str, Any]]:
        """Get the caller's user record together with their profile."""
        if identity is None:
            return None
        user = self.store.get_user(identity.user_id)
        if user is None:
            return None
        return {
            "user_id": user["id"],
            "role": user["role"],
            "created_at": user["created_at"],
            "profile": self.store.get_profile(identity.user_id),
        }

    # === Account Methods ===

    def list_accounts(self, identity: Optional[Identity]) -> List[Dict[str, Any]]:
        """Get the caller's active accounts."""
        if identity is None:
            return []
        return self.store.get_accounts(identity.user_id)

    def create_account(
        self,
        identity: Optional[Identity],
        name: str,
        account_type: str,
        currency: str,
        balance: float,
        color: str
    ) -> int:
        """Create an account. Returns its ID."""
        identity = require_identity(identity)
        if not name or not name.strip():
            raise InvalidFieldError("Account name is required")
        _require_choice("account type", account_type, ACCOUNT_TYPES)
        if not currency or not currency.strip():
            raise InvalidFieldError("Currency is required")
        _require_finite("Balance", balance)

        account_id = self.store.add_account(
            identity.user_id,
            name=name.strip(),
            account_type=account_type,
            currency=currency.strip().upper(),
            balance=balance,
            color=color
        )
        logger.info(f"Created account {account_id} for user {identity.user_id}")
        return account_id

    def update_account(
        self,
        identity: Optional[Identity],
        account_id: int,
        name: Optional[str] = None,
        balance: Optional[float] = None,
        color: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> Dict[str, Any]:
        """Patch an account. Returns the updated account."""
        identity = require_identity(identity)
        if self.store.get_account(account_id, identity.user_id) is None:
            raise NotFoundError("Account not found")

        updates: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise InvalidFieldError("Account name is required")
            updates["name"] = name.strip()
        if balance is not None:
            _require_finite("Balance", balance)
            updates["balance"] = balance
        if color is not None:
            updates["color"] = color
        if is_active is not None:
            updates["is_active"] = int(is_active)

        if updates:
            self.store.update_account(account_id, identity.user_id, **updates)
        return self.store.get_account(account_id, identity.user_id)

    def get_total_balance(self, identity: Optional[Identity]) -> float:
        """Sum of balances over the caller's active accounts."""
        if identity is None:
            return 0
        return self.store.get_total_balance(identity.user_id)

    # === Transaction Methods ===

    def list_transactions(
        self,
        identity: Optional[Identity],
        limit: Optional[int] = None,
        account_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Newest transactions first, each with its account embedded."""
        if identity is None:
            return []

        transactions = self.store.get_transactions(
            identity.user_id,
            limit=limit or TRANSACTIONS_LIST_LIMIT,
            account_id=account_id
        )
        accounts: Dict[int, Optional[Dict[str, Any]]] = {}
        for txn in transactions:
            acct_id = txn["account_id"]
            if acct_id not in accounts:
                accounts[acct_id] = self.store.get_account(acct_id, identity.user_id)
            txn["account"] = accounts[acct_id]
        return transactions

    def create_transaction(
        self,
        identity: Optional[Identity],
        account_id: int,
        txn_type: str,
        amount: float,
        category: str,
        description: str,
        date: Optional[int] = None,
        tags: Optional[List[str]] = None
    ) -> int:
        """Record a transaction and apply it to the account balance.

        Returns:
            The new transaction ID
        """
        identity = require_identity(identity)
        _require_choice("transaction type", txn_type, TRANSACTION_TYPES)
        _require_non_negative("Amount", amount)
        if not category or not category.strip():
            raise InvalidFieldError("Category is required")

        if self.store.get_account(account_id, identity.user_id) is None:
            raise NotFoundError("Account not found")

        txn_id = self.store.add_transaction(
            identity.user_id,
            account_id=account_id,
            txn_type=txn_type,
            amount=amount,
            category=category.strip(),
            description=description or "",
            date=date if date is not None else self.now_ms(),
            tags=tags
        )
        logger.info(
            f"Recorded {txn_type} {txn_id} of {amount:.2f} on account {account_id} "
            f"for user {identity.user_id}"
        )
        return txn_id

    def get_monthly_stats(
        self,
        identity: Optional[Identity],
        month: Optional[int] = None,
        year: Optional[int] = None
    ) -> Dict[str, Any]:
        """Income, expenses and transactions for a calendar month.

        Args:
            month: 1-12, defaults to the current month
            year: defaults to the current year
        """
        if identity is None:
            return {"income": 0, "expenses": 0, "transactions": []}

        now = self.clock()
        month = now.month if month is None else month
        year = now.year if year is None else year
        if not 1 <= month <= 12:
            raise InvalidFieldError("Month must be between 1 and 12")

        start, end = month_bounds(year, month)
        transactions = self.store.get_transactions_in_range(identity.user_id, start, end)

        income = sum(t["amount"] for t in transactions if t["type"] == "income")
        expenses = sum(t["amount"] for t in transactions if t["type"] == "expense")
        return {"income": income, "expenses": expenses, "transactions": transactions}

    def get_category_breakdown(
        self,
        identity: Optional[Identity],
        txn_type: str,
        days: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Per-category totals over the last N days, largest first."""
        if identity is None:
            return []
        _require_choice("transaction type", txn_type, TRANSACTION_TYPES)

        since = self.now_ms() - (days or CATEGORY_BREAKDOWN_DAYS) * DAY_MS
        return self.store.get_category_totals(identity.user_id, txn_type, since)

    # === Budget Methods ===

    def list_budgets(self, identity: Optional[Identity]) -> List[Dict[str, Any]]:
        """Active budgets with spent, remaining and percentage."""
        if identity is None:
            return []

        results = []
        for budget in self.store.get_budgets(identity.user_id):
            spent = self.store.get_category_spending(
                identity.user_id,
                budget["category"],
                budget["start_date"],
                budget["end_date"]
            )
            results.append(summarize_budget(budget, spent))
        return results

    def create_budget(
        self,
        identity: Optional[Identity],
        category: str,
        amount: float,
        period: str
    ) -> int:
        """Create a budget whose window is fixed from the current time."""
        identity = require_identity(identity)
        if not category or not category.strip():
            raise InvalidFieldError("Category is required")
        _require_non_negative("Amount", amount)
        _require_choice("period", period, BUDGET_PERIODS)

        start_date, end_date = period_bounds(period, self.clock())
        budget_id = self.store.add_budget(
            identity.user_id,
            category=category.strip(),
            amount=amount,
            period=period,
            start_date=start_date,
            end_date=end_date
        )
        logger.info(f"Created {period} budget {budget_id} for user {identity.user_id}")
        return budget_id

    def update_budget(
        self,
        identity: Optional[Identity],
        budget_id: int,
        amount: Optional[float] = None,
        is_active: Optional[bool] = None
    ) -> Dict[str, Any]:
        """Patch a budget's amount or active flag. Returns the updated budget."""
        identity = require_identity(identity)
        if self.store.get_budget(budget_id, identity.user_id) is None:
            raise NotFoundError("Budget not found")

        updates: Dict[str, Any] = {}
        if amount is not None:
            _require_non_negative("Amount", amount)
            updates["amount"] = amount
        if is_active is not None:
            updates["is_active"] = int(is_active)

        if updates:
            self.store.update_budget(budget_id, identity.user_id, **updates)
        return self.store.get_budget(budget_id, identity.user_id)

    # === Category Methods ===

    def list_categories(
        self,
        identity: Optional[Identity],
        category_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Get the caller's categories, optionally of one type."""
        if identity is None:
            return []
        if category_type is not None:
            _require_choice("category type", category_type, TRANSACTION_TYPES)
        return self.store.get_categories(identity.user_id, category_type)

    def initialize_default_categories(self, identity: Optional[Identity]) -> int:
        """Seed the default categories once. Returns how many were created."""
        identity = require_identity(identity)
        created = self.store.add_default_categories(identity.user_id, DEFAULT_CATEGORIES)
        if created:
            logger.info(f"Seeded {created} default categories for user {identity.user_id}")
        return created

    def create_category(
        self,
        identity: Optional[Identity],
        name: str,
        icon: str,
        color: str,
        category_type: str
    ) -> int:
        """Create a custom category. Returns its ID."""
        identity = require_identity(identity)
        if not name or not name.strip():
            raise InvalidFieldError("Category name is required")
        _require_choice("category type", category_type, TRANSACTION_TYPES)

        return self.store.add_category(
            identity.user_id,
            name=name.strip(),
            icon=icon,
            color=color,
            category_type=category_type
        )

    # === Insight Methods ===

    def _with_typed_data(self, insight: Dict[str, Any]) -> Dict[str, Any]:
        insight["data"] = parse_insight_data(insight["type"], insight.get("data"))
        return insight

    def list_insights(self, identity: Optional[Identity]) -> List[Dict[str, Any]]:
        """The latest insights, newest first."""
        if identity is None:
            return []
        return [
            self._with_typed_data(i)
            for i in self.store.get_insights(identity.user_id, INSIGHTS_LIST_LIMIT)
        ]

    def generate_insights(
        self,
        identity: Optional[Identity],
        now: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Regenerate and store the caller's insights.

        Args:
            now: Reference time in epoch ms (default: the service clock)
        """
        identity = require_identity(identity)
        logger.info(f"Generating insights for user {identity.user_id}")
        return self.insights_generator.generate_and_store(
            identity.user_id, self.now_ms() if now is None else now
        )

    def mark_insight_read(self, identity: Optional[Identity], insight_id: int) -> Dict[str, Any]:
        """Flag an insight as read. Returns the updated insight."""
        identity = require_identity(identity)
        if not self.store.mark_insight_read(insight_id, identity.user_id):
            raise NotFoundError("Insight not found")
        return self._with_typed_data(self.store.get_insight(insight_id, identity.user_id))

    def clear_insights(self, identity: Optional[Identity]) -> Dict[str, int]:
        """Remove every stored insight of the caller."""
        identity = require_identity(identity)
        removed = self.store.delete_insights(identity.user_id)
        return {"removed": removed}

    # === Profile Methods ===

    def get_my_profile(self, identity: Optional[Identity]) -> Optional[Dict[str, Any]]:
        """Get the caller's profile."""
        if identity is None:
            return None
        return self.store.get_profile(identity.user_id)

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get any user's profile."""
        return self.store.get_profile(user_id)

    def _validate_profile(
        self,
        username: str,
        bio: Optional[str],
        profile_picture_url: Optional[str]
    ) -> None:
        if len(username) < USERNAME_MIN_LENGTH:
            raise InvalidFieldError(f"Username must be at least {USERNAME_MIN_LENGTH} characters")
        if len(username) > USERNAME_MAX_LENGTH:
            raise InvalidFieldError(f"Username cannot exceed {USERNAME_MAX_LENGTH} characters")
        if bio and len(bio) > BIO_MAX_LENGTH:
            raise InvalidFieldError(f"Bio cannot exceed {BIO_MAX_LENGTH} characters")
        if profile_picture_url is not None:
            if not profile_picture_url.startswith(PROFILE_PICTURE_URL_PREFIXES):
                raise InvalidFieldError("Profile picture must be an http(s) or data:image URL")
            if len(profile_picture_url) > MAX_PROFILE_PICTURE_URL_LENGTH:
                raise InvalidFieldError("Profile picture is too large")

    def upsert_profile(
        self,
        identity: Optional[Identity],
        username: str,
        bio: Optional[str] = None,
        profile_picture_url: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create the caller's profile, or update it if one exists.

        The picture is only replaced when a new one is given.
        """
        identity = require_identity(identity)
        username = (username or "").strip()
        self._validate_profile(username, bio, profile_picture_url)

        now = self.now_ms()
        if self.store.get_profile(identity.user_id):
            updates: Dict[str, Any] = {
                "username": username,
                "bio": bio,
                "is_profile_complete": 1,
                "updated_at": now,
            }
            if profile_picture_url is not None:
                updates["profile_picture_url"] = profile_picture_url
            self.store.update_profile(identity.user_id, **updates)
        else:
            self.store.add_profile(
                identity.user_id,
                username=username,
                bio=bio,
                profile_picture_url=profile_picture_url,
                is_profile_complete=True,
                now=now
            )
            logger.info(f"Created profile for user {identity.user_id}")

        return self.store.get_profile(identity.user_id)

    def remove_profile_picture(self, identity: Optional[Identity]) -> Dict[str, Any]:
        """Clear the caller's profile picture."""
        identity = require_identity(identity)
        if self.store.get_profile(identity.user_id) is None:
            raise NotFoundError("Profile not found")
        self.store.update_profile(
            identity.user_id, profile_picture_url=None, updated_at=self.now_ms()
        )
        return self.store.get_profile(identity.user_id)

    def get_my_profile_with_badges(self, identity: Optional[Identity]) -> Optional[Dict[str, Any]]:
        """The caller's profile fields plus their badges."""
        if identity is None:
            return None
        profile = self.store.get_profile(identity.user_id) or {}
        return {
            **profile,
            "user_id": identity.user_id,
            "badges": self.store.get_badges_for_user(identity.user_id),
        }

    # === Badge Methods ===

    def is_founder(self, identity: Optional[Identity]) -> bool:
        """Whether the caller may administer badges."""
        return identity is not None and identity.can(CAP_MANAGE_BADGES)

    def _require_capability(self, identity: Optional[Identity], capability: str, action: str) -> Identity:
        identity = require_identity(identity)
        if not identity.can(capability):
            logger.warning(f"User {identity.user_id} attempted to {action} without permission")
            raise ForbiddenError(f"Only the founder can {action}")
        return identity

    def list_badges(self) -> List[Dict[str, Any]]:
        """Get all badge definitions."""
        return self.store.get_all_badges()

    def get_user_badges(self, user_id: str) -> List[Dict[str, Any]]:
        """Get a user's badges with assignment metadata."""
        return self.store.get_badges_for_user(user_id)

    def get_my_badges(self, identity: Optional[Identity]) -> List[Dict[str, Any]]:
        """Get the caller's badges."""
        if identity is None:
            return []
        return self.store.get_badges_for_user(identity.user_id)

    def create_badge(
        self,
        identity: Optional[Identity],
        name: str,
        display_name: str,
        description: str,
        icon: str,
        color: str
    ) -> int:
        """Founder only: define a new badge. Returns its ID."""
        identity = self._require_capability(identity, CAP_MANAGE_BADGES, "create badges")
        if not name or not name.strip():
            raise InvalidFieldError("Badge name is required")
        if self.store.get_badge_by_name(name.strip()):
            raise ConflictError("Badge with this name already exists")

        badge_id = self.store.add_badge(
            name=name.strip(),
            display_name=display_name,
            description=description,
            icon=icon,
            color=color,
            created_at=self.now_ms()
        )
        logger.info(f"User {identity.user_id} created badge '{name}' ({badge_id})")
        return badge_id

    def assign_badge(
        self,
        identity: Optional[Identity],
        target_user_id: str,
        badge_id: int
    ) -> int:
        """Founder only: give a badge to a user. Returns the assignment ID."""
        identity = self._require_capability(identity, CAP_MANAGE_BADGES, "assign badges")
        if self.store.get_user_badge(target_user_id, badge_id):
            raise ConflictError("User already has this badge")
        if self.store.get_badge(badge_id) is None:
            raise NotFoundError("Badge not found")

        assignment_id = self.store.add_user_badge(
            target_user_id, badge_id, assigned_by=identity.user_id, assigned_at=self.now_ms()
        )
        logger.info(f"User {identity.user_id} assigned badge {badge_id} to {target_user_id}")
        return assignment_id

    def revoke_badge(
        self,
        identity: Optional[Identity],
        target_user_id: str,
        badge_id: int
    ) -> None:
        """Founder only: take a badge away from a user."""
        identity = self._require_capability(identity, CAP_MANAGE_BADGES, "revoke badges")
        if not self.store.delete_user_badge(target_user_id, badge_id):
            raise NotFoundError("User does not have this badge")
        logger.info(f"User {identity.user_id} revoked badge {badge_id} from {target_user_id}")

    def initialize_founder_badge(self, identity: Optional[Identity]) -> Dict[str, Any]:
        """Make sure the FOUNDER badge exists and founders carry it."""
        if identity is None:
            return {"badge_id": None, "already_exists": False, "assigned": False}

        existing = self.store.get_badge_by_name(FOUNDER_BADGE["name"])
        if existing:
            badge_id = existing["id"]
        else:
            badge_id = self.store.add_badge(created_at=self.now_ms(), **FOUNDER_BADGE)

        if not self.is_founder(identity):
            return {"badge_id": badge_id, "already_exists": existing is not None, "assigned": False}

        if self.store.get_user_badge(identity.user_id, badge_id) is None:
            self.store.add_user_badge(
                identity.user_id, badge_id, assigned_by=identity.user_id, assigned_at=self.now_ms()
            )
        return {"badge_id": badge_id, "already_exists": existing is not None, "assigned": True}

    def list_all_users(self, identity: Optional[Identity]) -> List[Dict[str, Any]]:
        """Founder only: every profile with its badges. Empty for everyone else."""
        if identity is None or not identity.can(CAP_LIST_USERS):
            return []
        return [
            {**profile, "badges": self.store.get_badges_for_user(profile["user_id"])}
            for profile in self.store.get_all_profiles()
        ]

    # === Summary ===

    def get_summary(self, identity: Optional[Identity]) -> Dict[str, Any]:
        """Dashboard overview: balances, this month's totals and budgets."""
        stats = self.get_monthly_stats(identity)
        return {
            "total_balance": self.get_total_balance(identity),
            "accounts": len(self.list_accounts(identity)),
            "income_this_month": stats["income"],
            "expenses_this_month": stats["expenses"],
            "net_this_month": stats["income"] - stats["expenses"],
            "budgets": self.list_budgets(identity),
        }
