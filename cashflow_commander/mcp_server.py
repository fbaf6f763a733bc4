#!/usr/bin/env python3
"""MCP Server for CashFlow Commander - exposes one user's finances to an assistant."""
from typing import Optional

from fastmcp import FastMCP

from cashflow_commander.config import MCP_USER_ID

# Initialize MCP server
mcp = FastMCP(
    name="cashflow-commander",
    instructions="""You have access to a personal finance tracker for a single user.

Use these tools to help the user understand their finances:
- get_summary: Balances, this month's income and expenses, and budget progress
- get_accounts: Active accounts with balances
- get_transactions: Most recent transactions
- get_budgets: Budgets with spent, remaining and percentage used
- get_category_breakdown: Spending or income per category
- get_insights: Stored spending insights
- generate_insights: Recompute insights from recent transactions

When discussing finances, be helpful and point out notable spending patterns."""
)

# Lazy-load the service to avoid import issues at startup
_service = None


def get_service():
    """Get or create the cashflow service instance."""
    global _service
    if _service is None:
        from cashflow_commander.api.cashflow_service import CashflowService
        _service = CashflowService()
        _service.__enter__()
    return _service


def get_identity():
    """Identity of the user configured in CASHFLOW_MCP_USER_ID."""
    return get_service().resolve_identity(MCP_USER_ID)


@mcp.tool()
def get_summary() -> dict:
    """Get an overview of balances, this month's totals and budgets.

    Returns total balance, account count, income, expenses and net for the
    current month, and each active budget with its progress.
    """
    return get_service().get_summary(get_identity())


@mcp.tool()
def get_accounts() -> list:
    """Get the user's active accounts with current balances."""
    return get_service().list_accounts(get_identity())


@mcp.tool()
def get_transactions(limit: int = 50, account_id: Optional[int] = None) -> list:
    """Get the most recent transactions, newest first.

    Args:
        limit: Max transactions to return (default 50)
        account_id: Only return transactions of this account

    Returns list of transactions, each with its account.
    """
    return get_service().list_transactions(get_identity(), limit=limit, account_id=account_id)


@mcp.tool()
def get_budgets() -> list:
    """Get active budgets with spent, remaining and percentage used."""
    return get_service().list_budgets(get_identity())


@mcp.tool()
def get_category_breakdown(type: str = "expense", days: int = 30) -> list:
    """Get totals per category, largest first.

    Args:
        type: "expense" or "income"
        days: How many days back to look
    """
    return get_service().get_category_breakdown(get_identity(), txn_type=type, days=days)


@mcp.tool()
def get_insights() -> list:
    """Get the latest stored insights."""
    return get_service().list_insights(get_identity())


@mcp.tool()
def generate_insights() -> list:
    """Recompute insights from the last 60 days of transactions and store them."""
    return get_service().generate_insights(get_identity())


if __name__ == "__main__":
    mcp.run()
