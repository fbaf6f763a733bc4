"""Configuration settings for CashFlow Commander."""
import os
from pathlib import Path
from typing import Dict, Any, List, FrozenSet

# Paths
DATA_DIR = Path(os.environ.get("CASHFLOW_DATA_DIR", Path.home() / ".cashflow_commander"))
DB_PATH = Path(os.environ.get("CASHFLOW_DB_PATH", DATA_DIR / "cashflow.db"))

# Time
DAY_MS = 24 * 60 * 60 * 1000
WEEK_MS = 7 * DAY_MS

# Insights
INSIGHTS_LOOKBACK_DAYS = 60  # Transactions older than this are ignored
INSIGHTS_MONTH_DAYS = 30  # "This month" window for breakdowns and savings
INSIGHTS_WEEK_DAYS = 7
INSIGHTS_LIST_LIMIT = 10
SAVINGS_TARGET_RATE = 0.20

# Listing defaults
TRANSACTIONS_LIST_LIMIT = 50
CATEGORY_BREAKDOWN_DAYS = 30

# Validation
USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 30
BIO_MAX_LENGTH = 150
MAX_PROFILE_PICTURE_URL_LENGTH = 2_000_000  # base64 data URLs are large
PROFILE_PICTURE_URL_PREFIXES = ("http://", "https://", "data:image/")

ACCOUNT_TYPES = ["checking", "savings", "credit", "investment"]
TRANSACTION_TYPES = ["income", "expense"]
BUDGET_PERIODS = ["weekly", "monthly", "yearly"]

# Roles and what they are allowed to do
ROLE_USER = "user"
ROLE_FOUNDER = "founder"
ROLES = [ROLE_USER, ROLE_FOUNDER]
CAP_MANAGE_BADGES = "manage_badges"
CAP_LIST_USERS = "list_users"
ROLE_CAPABILITIES: Dict[str, FrozenSet[str]] = {
    ROLE_USER: frozenset(),
    ROLE_FOUNDER: frozenset({CAP_MANAGE_BADGES, CAP_LIST_USERS}),
}

# Users that receive the founder role the first time they are seen
FOUNDER_USER_IDS: FrozenSet[str] = frozenset(
    uid.strip()
    for uid in os.environ.get("CASHFLOW_FOUNDER_USER_IDS", "").split(",")
    if uid.strip()
)

FOUNDER_BADGE: Dict[str, str] = {
    "name": "FOUNDER",
    "display_name": "Founder",
    "description": "The creator and owner of CashFlow Commander",
    "icon": "👑",
    "color": "#FFD700",
}

# MCP server acts on behalf of this user
MCP_USER_ID = os.environ.get("CASHFLOW_MCP_USER_ID")

# Default categories, seeded once per user
DEFAULT_CATEGORIES: List[Dict[str, Any]] = [
    # Expense
    {"name": "Food & Dining", "icon": "🍽️", "color": "#FF6B6B", "type": "expense"},
    {"name": "Transportation", "icon": "🚗", "color": "#4ECDC4", "type": "expense"},
    {"name": "Shopping", "icon": "🛍️", "color": "#45B7D1", "type": "expense"},
    {"name": "Entertainment", "icon": "🎬", "color": "#96CEB4", "type": "expense"},
    {"name": "Bills & Utilities", "icon": "⚡", "color": "#FFEAA7", "type": "expense"},
    {"name": "Healthcare", "icon": "🏥", "color": "#DDA0DD", "type": "expense"},
    {"name": "Education", "icon": "📚", "color": "#98D8C8", "type": "expense"},
    {"name": "Travel", "icon": "✈️", "color": "#F7DC6F", "type": "expense"},
    # Income
    {"name": "Salary", "icon": "💼", "color": "#2ECC71", "type": "income"},
    {"name": "Freelance", "icon": "💻", "color": "#3498DB", "type": "income"},
    {"name": "Investment", "icon": "📈", "color": "#9B59B6", "type": "income"},
    {"name": "Gift", "icon": "🎁", "color": "#E74C3C", "type": "income"},
    {"name": "Other", "icon": "💰", "color": "#34495E", "type": "income"},
]


def ensure_data_dir() -> Path:
    """Ensure the data directory exists."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR
