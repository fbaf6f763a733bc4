"""SQLite schema definitions for CashFlow Commander."""

SCHEMA_SQL = """
-- Users known to the service (identity comes from the auth provider)
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,  -- User id forwarded by the identity provider
    role TEXT NOT NULL DEFAULT 'user',  -- user, founder
    created_at INTEGER NOT NULL
);

-- Accounts (checking, savings, credit, investment)
CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'checking',
    currency TEXT NOT NULL DEFAULT 'USD',
    balance REAL NOT NULL DEFAULT 0,  -- Running total, patched by transaction creation
    color TEXT DEFAULT '#3B82F6',
    is_active INTEGER DEFAULT 1
);

-- Transactions (append-only)
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    account_id INTEGER NOT NULL,
    type TEXT NOT NULL,  -- income, expense
    amount REAL NOT NULL,  -- Always a non-negative magnitude
    category TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    date INTEGER NOT NULL,  -- Epoch milliseconds
    tags TEXT,  -- JSON array of strings
    FOREIGN KEY (account_id) REFERENCES accounts(id)
);

-- Budgets: spent/remaining are derived from transactions at read time
CREATE TABLE IF NOT EXISTS budgets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    category TEXT NOT NULL,
    amount REAL NOT NULL,
    period TEXT NOT NULL DEFAULT 'monthly',  -- weekly, monthly, yearly
    start_date INTEGER NOT NULL,
    end_date INTEGER NOT NULL,
    is_active INTEGER DEFAULT 1
);

-- Per-user categories
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    icon TEXT NOT NULL DEFAULT '',
    color TEXT NOT NULL DEFAULT '#6B7280',
    type TEXT NOT NULL,  -- income, expense
    is_default INTEGER DEFAULT 0
);

-- Generated insights, replaced wholesale on each regeneration
CREATE TABLE IF NOT EXISTS insights (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    data TEXT,  -- JSON payload, schema depends on type
    created_at INTEGER NOT NULL,
    is_read INTEGER DEFAULT 0
);

-- One profile per user
CREATE TABLE IF NOT EXISTS profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL UNIQUE,
    username TEXT NOT NULL,
    bio TEXT,
    profile_picture_url TEXT,  -- http(s) URL or base64 data URL
    is_profile_complete INTEGER DEFAULT 0,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

-- Global badge definitions
CREATE TABLE IF NOT EXISTS badges (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    icon TEXT NOT NULL DEFAULT '',
    color TEXT NOT NULL DEFAULT '#6B7280',
    created_at INTEGER NOT NULL
);

-- Badge assignments; revocation deletes the row
CREATE TABLE IF NOT EXISTS user_badges (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    badge_id INTEGER NOT NULL,
    assigned_at INTEGER NOT NULL,
    assigned_by TEXT NOT NULL,
    UNIQUE (user_id, badge_id),
    FOREIGN KEY (badge_id) REFERENCES badges(id)
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_accounts_user ON accounts(user_id);
CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id);
CREATE INDEX IF NOT EXISTS idx_transactions_account ON transactions(account_id);
CREATE INDEX IF NOT EXISTS idx_transactions_user_date ON transactions(user_id, date);
CREATE INDEX IF NOT EXISTS idx_budgets_user ON budgets(user_id);
CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(user_id);
CREATE INDEX IF NOT EXISTS idx_insights_user ON insights(user_id);
CREATE INDEX IF NOT EXISTS idx_user_badges_user ON user_badges(user_id);
CREATE INDEX IF NOT EXISTS idx_user_badges_badge ON user_badges(badge_id);
"""
