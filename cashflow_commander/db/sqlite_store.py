"""SQLite store for accounts, transactions, budgets, insights, profiles and badges."""
import sqlite3
import json
from pathlib import Path
from typing import List, Dict, Any, Optional, Iterable

from .schema import SCHEMA_SQL


def _row_to_dict(
    row: Optional[sqlite3.Row],
    bool_fields: Iterable[str] = (),
    json_fields: Iterable[str] = ()
) -> Optional[Dict[str, Any]]:
    """Convert a row to a plain dict, decoding flag and JSON columns."""
    if row is None:
        return None
    record = dict(row)
    for field in bool_fields:
        if field in record:
            record[field] = bool(record[field])
    for field in json_fields:
        if record.get(field) is not None:
            record[field] = json.loads(record[field])
    return record


class SQLiteStore:
    """SQLite storage for every CashFlow Commander collection.

    Every per-user read and write filters on ``user_id``, so a record owned by
    another user looks exactly like a missing one.
    """

    ACCOUNT_BOOLS = ("is_active",)
    BUDGET_BOOLS = ("is_active",)
    CATEGORY_BOOLS = ("is_default",)
    INSIGHT_BOOLS = ("is_read",)
    PROFILE_BOOLS = ("is_profile_complete",)

    def __init__(self, db_path: Path):
        """Initialize the store with database path."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        # Enable WAL mode for better concurrency
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and indexes if they do not exist yet."""
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def get_tables(self) -> List[str]:
        """Get list of tables in the database."""
        cursor = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )
        return [row[0] for row in cursor.fetchall()]

    def _update(self, table: str, allowed: set, where: Dict[str, Any], kwargs: Dict[str, Any]) -> bool:
        """Patch the allowed fields of one row. Returns False if nothing matched."""
        updates = {k: v for k, v in kwargs.items() if k in allowed}
        if not updates:
            return False

        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        where_clause = " AND ".join(f"{k} = ?" for k in where.keys())
        params = list(updates.values()) + list(where.values())
        cursor = self.conn.execute(
            f"UPDATE {table} SET {set_clause} WHERE {where_clause}", params
        )
        self.conn.commit()
        return cursor.rowcount > 0

    # === User Methods ===

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a user record by provider user id."""
        cursor = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        return _row_to_dict(cursor.fetchone())

    def add_user(self, user_id: str, role: str, created_at: int) -> bool:
        """Register a user. Returns False if the user already existed."""
        cursor = self.conn.execute(
            "INSERT OR IGNORE INTO users (id, role, created_at) VALUES (?, ?, ?)",
            (user_id, role, created_at)
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def update_user_role(self, user_id: str, role: str) -> bool:
        """Change a user's role."""
        return self._update("users", {"role"}, {"id": user_id}, {"role": role})

    # === Account Methods ===

    def get_accounts(self, user_id: str, active_only: bool = True) -> List[Dict[str, Any]]:
        """Get a user's accounts."""
        query = "SELECT * FROM accounts WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY id"
        cursor = self.conn.execute(query, (user_id,))
        return [_row_to_dict(row, self.ACCOUNT_BOOLS) for row in cursor.fetchall()]

    def get_account(self, account_id: int, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a single account owned by the user."""
        cursor = self.conn.execute(
            "SELECT * FROM accounts WHERE id = ? AND user_id = ?", (account_id, user_id)
        )
        return _row_to_dict(cursor.fetchone(), self.ACCOUNT_BOOLS)

    def add_account(
        self,
        user_id: str,
        name: str,
        account_type: str = "checking",
        currency: str = "USD",
        balance: float = 0,
        color: str = "#3B82F6"
    ) -> int:
        """Add a new active account. Returns the new account ID."""
        cursor = self.conn.execute(
            """INSERT INTO accounts (user_id, name, type, currency, balance, color, is_active)
               VALUES (?, ?, ?, ?, ?, ?, 1)""",
            (user_id, name, account_type, currency, balance, color)
        )
        self.conn.commit()
        return cursor.lastrowid

    def update_account(self, account_id: int, user_id: str, **kwargs) -> bool:
        """Update an account's fields."""
        allowed = {"name", "balance", "color", "is_active"}
        return self._update(
            "accounts", allowed, {"id": account_id, "user_id": user_id}, kwargs
        )

    def get_total_balance(self, user_id: str) -> float:
        """Sum of balances over the user's active accounts."""
        cursor = self.conn.execute(
            "SELECT SUM(balance) FROM accounts WHERE user_id = ? AND is_active = 1",
            (user_id,)
        )
        result = cursor.fetchone()[0]
        return result if result else 0

    # === Transaction Methods ===

    def add_transaction(
        self,
        user_id: str,
        account_id: int,
        txn_type: str,
        amount: float,
        category: str,
        description: str,
        date: int,
        tags: Optional[List[str]] = None
    ) -> int:
        """Insert a transaction and apply it to the account balance.

        Both writes happen in one SQLite transaction.
        """
        delta = amount if txn_type == "income" else -amount
        with self.conn:
            cursor = self.conn.execute(
                """INSERT INTO transactions
                   (user_id, account_id, type, amount, category, description, date, tags)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id, account_id, txn_type, amount, category, description, date,
                    json.dumps(tags) if tags is not None else None
                )
            )
            self.conn.execute(
                "UPDATE accounts SET balance = balance + ? WHERE id = ? AND user_id = ?",
                (delta, account_id, user_id)
            )
        return cursor.lastrowid

    def get_transactions(
        self,
        user_id: str,
        limit: int = 50,
        account_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Get the newest transactions first, optionally for a single account."""
        query = "SELECT * FROM transactions WHERE user_id = ?"
        params: List[Any] = [user_id]
        if account_id is not None:
            query += " AND account_id = ?"
            params.append(account_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        cursor = self.conn.execute(query, params)
        return [_row_to_dict(row, json_fields=("tags",)) for row in cursor.fetchall()]

    def get_transactions_in_range(
        self,
        user_id: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        txn_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Get transactions with start <= date <= end, oldest first."""
        query = "SELECT * FROM transactions WHERE user_id = ?"
        params: List[Any] = [user_id]
        if start is not None:
            query += " AND date >= ?"
            params.append(start)
        if end is not None:
            query += " AND date <= ?"
            params.append(end)
        if txn_type is not None:
            query += " AND type = ?"
            params.append(txn_type)
        query += " ORDER BY date, id"

        cursor = self.conn.execute(query, params)
        return [_row_to_dict(row, json_fields=("tags",)) for row in cursor.fetchall()]

    def get_category_spending(
        self,
        user_id: str,
        category: str,
        start: int,
        end: int
    ) -> float:
        """Total expense amount for a category within [start, end]."""
        cursor = self.conn.execute(
            """SELECT SUM(amount) FROM transactions
               WHERE user_id = ? AND type = 'expense' AND category = ?
                 AND date >= ? AND date <= ?""",
            (user_id, category, start, end)
        )
        result = cursor.fetchone()[0]
        return result if result else 0

    def get_category_totals(
        self,
        user_id: str,
        txn_type: str,
        since: int
    ) -> List[Dict[str, Any]]:
        """Per-category totals for one transaction type since a timestamp.

        Largest first; ties keep the order in which categories first appeared.
        """
        cursor = self.conn.execute(
            """SELECT category, SUM(amount) AS total
               FROM transactions
               WHERE user_id = ? AND type = ? AND date >= ?
               GROUP BY category
               ORDER BY total DESC, MIN(date), MIN(id)""",
            (user_id, txn_type, since)
        )
        return [{"category": row[0], "amount": row[1] or 0} for row in cursor.fetchall()]

    # === Budget Methods ===

    def get_budgets(self, user_id: str, active_only: bool = True) -> List[Dict[str, Any]]:
        """Get a user's budgets."""
        query = "SELECT * FROM budgets WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY id"
        cursor = self.conn.execute(query, (user_id,))
        return [_row_to_dict(row, self.BUDGET_BOOLS) for row in cursor.fetchall()]

    def get_budget(self, budget_id: int, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a single budget owned by the user."""
        cursor = self.conn.execute(
            "SELECT * FROM budgets WHERE id = ? AND user_id = ?", (budget_id, user_id)
        )
        return _row_to_dict(cursor.fetchone(), self.BUDGET_BOOLS)

    def add_budget(
        self,
        user_id: str,
        category: str,
        amount: float,
        period: str,
        start_date: int,
        end_date: int
    ) -> int:
        """Add a new active budget. Returns the new budget ID."""
        cursor = self.conn.execute(
            """INSERT INTO budgets (user_id, category, amount, period, start_date, end_date, is_active)
               VALUES (?, ?, ?, ?, ?, ?, 1)""",
            (user_id, category, amount, period, start_date, end_date)
        )
        self.conn.commit()
        return cursor.lastrowid

    def update_budget(self, budget_id: int, user_id: str, **kwargs) -> bool:
        """Update a budget's amount or active flag."""
        allowed = {"amount", "is_active"}
        return self._update(
            "budgets", allowed, {"id": budget_id, "user_id": user_id}, kwargs
        )

    # === Category Methods ===

    def get_categories(
        self,
        user_id: str,
        category_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Get a user's categories, optionally only one type."""
        query = "SELECT * FROM categories WHERE user_id = ?"
        params: List[Any] = [user_id]
        if category_type is not None:
            query += " AND type = ?"
            params.append(category_type)
        query += " ORDER BY id"
        cursor = self.conn.execute(query, params)
        return [_row_to_dict(row, self.CATEGORY_BOOLS) for row in cursor.fetchall()]

    def add_category(
        self,
        user_id: str,
        name: str,
        icon: str,
        color: str,
        category_type: str,
        is_default: bool = False
    ) -> int:
        """Add a new category. Returns the new category ID."""
        cursor = self.conn.execute(
            """INSERT INTO categories (user_id, name, icon, color, type, is_default)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (user_id, name, icon, color, category_type, int(is_default))
        )
        self.conn.commit()
        return cursor.lastrowid

    def add_default_categories(self, user_id: str, categories: List[Dict[str, Any]]) -> int:
        """Seed default categories unless the user already has any.

        Returns the number of categories created (0 when already seeded).
        """
        with self.conn:
            cursor = self.conn.execute(
                "SELECT COUNT(*) FROM categories WHERE user_id = ?", (user_id,)
            )
            if cursor.fetchone()[0] > 0:
                return 0

            self.conn.executemany(
                """INSERT INTO categories (user_id, name, icon, color, type, is_default)
                   VALUES (?, ?, ?, ?, ?, 1)""",
                [(user_id, c["name"], c["icon"], c["color"], c["type"]) for c in categories]
            )
        return len(categories)

    # === Insight Methods ===

    def get_insights(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Get the most recent insights first."""
        cursor = self.conn.execute(
            """SELECT * FROM insights WHERE user_id = ?
               ORDER BY created_at DESC, id DESC LIMIT ?""",
            (user_id, limit)
        )
        return [
            _row_to_dict(row, self.INSIGHT_BOOLS, ("data",)) for row in cursor.fetchall()
        ]

    def get_insight(self, insight_id: int, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a single insight owned by the user."""
        cursor = self.conn.execute(
            "SELECT * FROM insights WHERE id = ? AND user_id = ?", (insight_id, user_id)
        )
        return _row_to_dict(cursor.fetchone(), self.INSIGHT_BOOLS, ("data",))

    def replace_insights(
        self,
        user_id: str,
        insights: List[Dict[str, Any]],
        base_time: int
    ) -> List[int]:
        """Delete all of the user's insights and insert a new set.

        Each insight gets ``created_at = base_time + position`` so that
        ordering by ``created_at`` preserves insertion order.
        """
        ids = []
        with self.conn:
            self.conn.execute("DELETE FROM insights WHERE user_id = ?", (user_id,))
            for offset, insight in enumerate(insights):
                cursor = self.conn.execute(
                    """INSERT INTO insights (user_id, type, title, description, data, created_at, is_read)
                       VALUES (?, ?, ?, ?, ?, ?, 0)""",
                    (
                        user_id,
                        insight["type"],
                        insight["title"],
                        insight["description"],
                        json.dumps(insight.get("data")),
                        base_time + offset
                    )
                )
                ids.append(cursor.lastrowid)
        return ids

    def mark_insight_read(self, insight_id: int, user_id: str) -> bool:
        """Flag an insight as read."""
        return self._update(
            "insights", {"is_read"}, {"id": insight_id, "user_id": user_id}, {"is_read": 1}
        )

    def delete_insights(self, user_id: str) -> int:
        """Delete all of the user's insights. Returns the number removed."""
        cursor = self.conn.execute("DELETE FROM insights WHERE user_id = ?", (user_id,))
        self.conn.commit()
        return cursor.rowcount

    # === Profile Methods ===

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get the profile belonging to a user."""
        cursor = self.conn.execute("SELECT * FROM profiles WHERE user_id = ?", (user_id,))
        return _row_to_dict(cursor.fetchone(), self.PROFILE_BOOLS)

    def get_all_profiles(self) -> List[Dict[str, Any]]:
        """Get every profile."""
        cursor = self.conn.execute("SELECT * FROM profiles ORDER BY id")
        return [_row_to_dict(row, self.PROFILE_BOOLS) for row in cursor.fetchall()]

    def add_profile(
        self,
        user_id: str,
        username: str,
        bio: Optional[str],
        profile_picture_url: Optional[str],
        is_profile_complete: bool,
        now: int
    ) -> int:
        """Create a profile. Returns the new profile ID."""
        cursor = self.conn.execute(
            """INSERT INTO profiles
               (user_id, username, bio, profile_picture_url, is_profile_complete, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (user_id, username, bio, profile_picture_url, int(is_profile_complete), now, now)
        )
        self.conn.commit()
        return cursor.lastrowid

    def update_profile(self, user_id: str, **kwargs) -> bool:
        """Update profile fields."""
        allowed = {"username", "bio", "profile_picture_url", "is_profile_complete", "updated_at"}
        return self._update("profiles", allowed, {"user_id": user_id}, kwargs)

    # === Badge Methods ===

    def get_all_badges(self) -> List[Dict[str, Any]]:
        """Get all badge definitions."""
        cursor = self.conn.execute("SELECT * FROM badges ORDER BY id")
        return [dict(row) for row in cursor.fetchall()]

    def get_badge(self, badge_id: int) -> Optional[Dict[str, Any]]:
        """Get a badge by ID."""
        cursor = self.conn.execute("SELECT * FROM badges WHERE id = ?", (badge_id,))
        return _row_to_dict(cursor.fetchone())

    def get_badge_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """Get a badge by its unique name."""
        cursor = self.conn.execute("SELECT * FROM badges WHERE name = ?", (name,))
        return _row_to_dict(cursor.fetchone())

    def add_badge(
        self,
        name: str,
        display_name: str,
        description: str,
        icon: str,
        color: str,
        created_at: int
    ) -> int:
        """Add a badge definition. Returns the new badge ID."""
        cursor = self.conn.execute(
            """INSERT INTO badges (name, display_name, description, icon, color, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (name, display_name, description, icon, color, created_at)
        )
        self.conn.commit()
        return cursor.lastrowid

    def get_user_badge(self, user_id: str, badge_id: int) -> Optional[Dict[str, Any]]:
        """Get the assignment linking a user to a badge."""
        cursor = self.conn.execute(
            "SELECT * FROM user_badges WHERE user_id = ? AND badge_id = ?",
            (user_id, badge_id)
        )
        return _row_to_dict(cursor.fetchone())

    def add_user_badge(
        self,
        user_id: str,
        badge_id: int,
        assigned_by: str,
        assigned_at: int
    ) -> int:
        """Assign a badge to a user. Returns the assignment ID."""
        cursor = self.conn.execute(
            """INSERT INTO user_badges (user_id, badge_id, assigned_at, assigned_by)
               VALUES (?, ?, ?, ?)""",
            (user_id, badge_id, assigned_at, assigned_by)
        )
        self.conn.commit()
        return cursor.lastrowid

    def delete_user_badge(self, user_id: str, badge_id: int) -> bool:
        """Remove a badge assignment."""
        cursor = self.conn.execute(
            "DELETE FROM user_badges WHERE user_id = ? AND badge_id = ?",
            (user_id, badge_id)
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def get_badges_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        """Get a user's badges with assignment metadata, oldest assignment first."""
        cursor = self.conn.execute(
            """SELECT b.*, ub.assigned_at, ub.assigned_by
               FROM user_badges ub
               JOIN badges b ON b.id = ub.badge_id
               WHERE ub.user_id = ?
               ORDER BY ub.assigned_at, ub.id""",
            (user_id,)
        )
        return [dict(row) for row in cursor.fetchall()]
