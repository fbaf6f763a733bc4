"""FastAPI backend for CashFlow Commander."""
import logging
from typing import Optional, List
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cashflow_commander.api.cashflow_service import CashflowService
from cashflow_commander.api.errors import CashflowError
from cashflow_commander.api.identity import Identity


logger = logging.getLogger(__name__)

# Global service instance (for production use)
_service: Optional[CashflowService] = None


def get_service() -> CashflowService:
    """Dependency to get the cashflow service."""
    global _service
    if _service is None:
        _service = CashflowService()
        _service.__enter__()
    return _service


def get_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    service: CashflowService = Depends(get_service)
) -> Optional[Identity]:
    """Dependency resolving the caller from the identity provider header.

    Anonymous requests resolve to None.
    """
    return service.resolve_identity(x_user_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle."""
    yield
    # Cleanup on shutdown
    global _service
    if _service is not None:
        _service.__exit__(None, None, None)
        _service = None


app = FastAPI(
    title="CashFlow Commander API",
    description="Personal finance tracking: accounts, budgets, insights and badges",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(CashflowError)
async def cashflow_error_handler(request: Request, exc: CashflowError):
    """Map domain errors to the same shape as HTTPException responses."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# === Pydantic Models ===

class AccountCreate(BaseModel):
    name: str
    account_type: str = "checking"  # checking, savings, credit, investment
    currency: str = "USD"
    balance: float = 0
    color: str = "#3B82F6"  # Chart color


class AccountUpdate(BaseModel):
    name: Optional[str] = None
    balance: Optional[float] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None


class TransactionCreate(BaseModel):
    account_id: int
    type: str  # income, expense
    amount: float  # Non-negative magnitude
    category: str
    description: str = ""
    date: Optional[int] = None  # Epoch ms, defaults to now
    tags: Optional[List[str]] = None


class BudgetCreate(BaseModel):
    category: str
    amount: float
    period: str = "monthly"  # weekly, monthly, yearly


class BudgetUpdate(BaseModel):
    amount: Optional[float] = None
    is_active: Optional[bool] = None


class CategoryCreate(BaseModel):
    name: str
    icon: str = ""
    color: str = "#6B7280"
    type: str  # income, expense


class ProfileUpsert(BaseModel):
    username: str
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None  # http(s) or data:image/ URL


class BadgeCreate(BaseModel):
    name: str
    display_name: str
    description: str = ""
    icon: str = ""
    color: str = "#6B7280"


class BadgeAssignment(BaseModel):
    user_id: str
    badge_id: int


# === API Endpoints ===

@app.get("/api/me")
def get_me(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Get the caller's user record and profile."""
    return service.get_current_user(identity)


@app.get("/api/summary")
def get_summary(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Get dashboard summary."""
    return service.get_summary(identity)


# --- Accounts ---

@app.get("/api/accounts")
def get_accounts(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Get the caller's active accounts."""
    return service.list_accounts(identity)


@app.post("/api/accounts")
def create_account(
    account: AccountCreate,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Create a new account."""
    account_id = service.create_account(
        identity,
        name=account.name,
        account_type=account.account_type,
        currency=account.currency,
        balance=account.balance,
        color=account.color
    )
    return {"id": account_id, "name": account.name, "success": True}


@app.get("/api/accounts/total-balance")
def get_total_balance(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Sum of balances over active accounts."""
    return {"total_balance": service.get_total_balance(identity)}


@app.put("/api/accounts/{account_id}")
def update_account(
    account_id: int,
    updates: AccountUpdate,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Update an account."""
    return service.update_account(
        identity,
        account_id,
        name=updates.name,
        balance=updates.balance,
        color=updates.color,
        is_active=updates.is_active
    )


# --- Transactions ---

@app.get("/api/transactions")
def get_transactions(
    limit: int = Query(50, ge=1, le=500),
    account_id: Optional[int] = Query(None),
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Get newest transactions first, each with its account."""
    return service.list_transactions(identity, limit=limit, account_id=account_id)


@app.post("/api/transactions")
def create_transaction(
    txn: TransactionCreate,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Record a transaction and update the account balance."""
    txn_id = service.create_transaction(
        identity,
        account_id=txn.account_id,
        txn_type=txn.type,
        amount=txn.amount,
        category=txn.category,
        description=txn.description,
        date=txn.date,
        tags=txn.tags
    )
    return {"id": txn_id, "success": True}


@app.get("/api/transactions/monthly-stats")
def get_monthly_stats(
    month: Optional[int] = Query(None, description="Month number, 1-12. Defaults to current."),
    year: Optional[int] = Query(None),
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Income and expense totals for a calendar month."""
    return service.get_monthly_stats(identity, month=month, year=year)


@app.get("/api/transactions/category-breakdown")
def get_category_breakdown(
    type: str = Query("expense", pattern="^(income|expense)$"),
    days: int = Query(30, ge=1, le=366),
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Per-category totals over the last N days."""
    return service.get_category_breakdown(identity, txn_type=type, days=days)


# --- Budgets ---

@app.get("/api/budgets")
def get_budgets(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Get active budgets with spending progress."""
    return service.list_budgets(identity)


@app.post("/api/budgets")
def create_budget(
    budget: BudgetCreate,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Create a budget for the current period."""
    budget_id = service.create_budget(
        identity, category=budget.category, amount=budget.amount, period=budget.period
    )
    return {"id": budget_id, "success": True}


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    updates: BudgetUpdate,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Update a budget's amount or active flag."""
    return service.update_budget(
        identity, budget_id, amount=updates.amount, is_active=updates.is_active
    )


# --- Categories ---

@app.get("/api/categories")
def get_categories(
    type: Optional[str] = Query(None, pattern="^(income|expense)$"),
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Get the caller's categories."""
    return service.list_categories(identity, category_type=type)


@app.post("/api/categories")
def create_category(
    category: CategoryCreate,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Create a custom category."""
    category_id = service.create_category(
        identity,
        name=category.name,
        icon=category.icon,
        color=category.color,
        category_type=category.type
    )
    return {"id": category_id, "name": category.name, "success": True}


@app.post("/api/categories/defaults")
def initialize_default_categories(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Seed the default categories if the caller has none."""
    return {"created": service.initialize_default_categories(identity)}


# --- Insights ---

@app.get("/api/insights")
def get_insights(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Get the latest insights."""
    return service.list_insights(identity)


@app.delete("/api/insights")
def clear_insights(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Remove all stored insights."""
    return service.clear_insights(identity)


@app.post("/api/insights/generate")
def generate_insights(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Regenerate insights from recent transactions."""
    insights = service.generate_insights(identity)
    return {"generated": len(insights), "insights": insights}


@app.post("/api/insights/{insight_id}/read")
def mark_insight_read(
    insight_id: int,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Mark an insight as read."""
    return service.mark_insight_read(identity, insight_id)


# --- Profiles ---

@app.get("/api/profile")
def get_my_profile(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    return service.get_my_profile(identity)


@app.put("/api/profile")
def upsert_profile(
    profile: ProfileUpsert,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Create or update the caller's profile."""
    return service.upsert_profile(
        identity,
        username=profile.username,
        bio=profile.bio,
        profile_picture_url=profile.profile_picture_url
    )


@app.delete("/api/profile/picture")
def remove_profile_picture(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    return service.remove_profile_picture(identity)


@app.get("/api/profile/badges")
def get_my_profile_with_badges(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    return service.get_my_profile_with_badges(identity)


@app.get("/api/profiles/{user_id}")
def get_profile(user_id: str, service: CashflowService = Depends(get_service)):
    """Get another user's public profile."""
    return service.get_profile(user_id)


# --- Badges ---

@app.get("/api/badges")
def get_badges(service: CashflowService = Depends(get_service)):
    """Get all badge definitions."""
    return service.list_badges()


@app.post("/api/badges")
def create_badge(
    badge: BadgeCreate,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Create a badge (founder only)."""
    badge_id = service.create_badge(
        identity,
        name=badge.name,
        display_name=badge.display_name,
        description=badge.description,
        icon=badge.icon,
        color=badge.color
    )
    return {"id": badge_id, "name": badge.name, "success": True}


@app.get("/api/badges/mine")
def get_my_badges(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    return service.get_my_badges(identity)


@app.get("/api/badges/is-founder")
def is_founder(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    return {"is_founder": service.is_founder(identity)}


@app.post("/api/badges/assign")
def assign_badge(
    assignment: BadgeAssignment,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Assign a badge to a user (founder only)."""
    assignment_id = service.assign_badge(identity, assignment.user_id, assignment.badge_id)
    return {"id": assignment_id, "success": True}


@app.post("/api/badges/revoke")
def revoke_badge(
    assignment: BadgeAssignment,
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Revoke a badge from a user (founder only)."""
    service.revoke_badge(identity, assignment.user_id, assignment.badge_id)
    return {"success": True}


@app.post("/api/badges/founder")
def initialize_founder_badge(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Ensure the FOUNDER badge exists and is held by founders."""
    return service.initialize_founder_badge(identity)


@app.get("/api/users/{user_id}/badges")
def get_user_badges(user_id: str, service: CashflowService = Depends(get_service)):
    return service.get_user_badges(user_id)


@app.get("/api/admin/users")
def list_all_users(
    identity: Optional[Identity] = Depends(get_identity),
    service: CashflowService = Depends(get_service)
):
    """Every profile with badges (founder only, empty otherwise)."""
    return service.list_all_users(identity)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
