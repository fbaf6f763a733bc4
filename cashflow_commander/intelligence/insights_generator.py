"""Heuristic spending insights over a user's recent transactions."""
import logging
from typing import List, Dict, Any

from cashflow_commander.db.sqlite_store import SQLiteStore
from cashflow_commander.config import (
    DAY_MS,
    INSIGHTS_LOOKBACK_DAYS,
    INSIGHTS_MONTH_DAYS,
    INSIGHTS_WEEK_DAYS,
    SAVINGS_TARGET_RATE,
)
from cashflow_commander.intelligence.insight_types import (
    SpendingTrendData,
    TopExpenseData,
    CategoryStats,
    CategoryBreakdownData,
    TrendDetectionData,
    SavingsOpportunityData,
    RecommendationData,
)


logger = logging.getLogger(__name__)


def format_amount(amount: float) -> str:
    """Format a dollar amount, e.g. $1,234.50."""
    return f"${amount:,.2f}"


def _total(transactions: List[Dict[str, Any]]) -> float:
    return sum(t["amount"] for t in transactions)


class InsightsGenerator:
    """Generate textual insights from the last 60 days of transactions."""

    def __init__(self, store: SQLiteStore):
        """Initialize with SQLite store.

        Args:
            store: SQLiteStore instance
        """
        self.store = store

    def generate(self, user_id: str, now: int) -> List[Dict[str, Any]]:
        """Build insights for a user without storing them.

        Args:
            user_id: Owner of the transactions
            now: Current time in epoch milliseconds

        Returns:
            List of insight dicts with type, title, description, data
        """
        since = now - INSIGHTS_LOOKBACK_DAYS * DAY_MS
        transactions = self.store.get_transactions_in_range(user_id, start=since)
        return self.analyze(transactions, now)

    def generate_and_store(self, user_id: str, now: int) -> List[Dict[str, Any]]:
        """Generate insights and replace the user's stored insights with them.

        Returns:
            List of insight dicts
        """
        insights = self.generate(user_id, now)
        self.store.replace_insights(user_id, insights, base_time=now)
        logger.info(f"Stored {len(insights)} insights for user {user_id}")
        return insights

    def analyze(self, transactions: List[Dict[str, Any]], now: int) -> List[Dict[str, Any]]:
        """Run every heuristic over an already-fetched list of transactions."""
        if not transactions:
            return []

        week_ms = INSIGHTS_WEEK_DAYS * DAY_MS
        month_ms = INSIGHTS_MONTH_DAYS * DAY_MS

        expenses = [t for t in transactions if t["type"] == "expense"]
        incomes = [t for t in transactions if t["type"] == "income"]

        last_week = [t for t in expenses if t["date"] >= now - week_ms]
        previous_week = [
            t for t in expenses
            if now - 2 * week_ms <= t["date"] < now - week_ms
        ]
        last_month = [t for t in expenses if t["date"] >= now - month_ms]
        last_month_income = _total([t for t in incomes if t["date"] >= now - month_ms])

        insights = []

        trend = self._weekly_trend(last_week, previous_week)
        if trend:
            insights.append(trend)

        if last_month:
            insights.append(self._biggest_expense(last_month))
            insights.extend(self._category_insights(last_month))

        savings = self._savings_opportunity(last_month_income, _total(last_month))
        if savings:
            insights.append(savings)

        if last_week:
            insights.append(self._personalized_tip(last_week))

        return insights

    def _weekly_trend(
        self,
        last_week: List[Dict[str, Any]],
        previous_week: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Compare the last 7 days of spend with the 7 days before."""
        last_total = _total(last_week)
        previous_total = _total(previous_week)
        if last_total <= 0 and previous_total <= 0:
            return {}

        change = None
        if previous_total > 0:
            change = (last_total - previous_total) / previous_total * 100

        if change is not None:
            direction = "more" if change > 0 else "less"
            description = (
                f"You spent {abs(change):.1f}% {direction} than the previous week "
                f"({format_amount(last_total)} vs {format_amount(previous_total)})."
            )
        else:
            description = f"Your spending last week totalled {format_amount(last_total)}."

        return {
            "type": "spending_trend",
            "title": "Weekly Spending Pattern",
            "description": description,
            "data": SpendingTrendData(
                last_week_total=last_total,
                previous_week_total=previous_total,
                change=change,
            ).model_dump(),
        }

    def _biggest_expense(self, expenses: List[Dict[str, Any]]) -> Dict[str, Any]:
        # max() keeps the first of equal amounts
        top = max(expenses, key=lambda t: t["amount"])
        detail = f" ({top['description']})" if top.get("description") else ""
        return {
            "type": "top_category",
            "title": "Biggest Expense",
            "description": (
                f"Your largest expense in the last 30 days was "
                f"{format_amount(top['amount'])} for {top['category']}{detail}."
            ),
            "data": TopExpenseData(
                transaction_id=top["id"],
                category=top["category"],
                amount=top["amount"],
                description=top.get("description") or "",
            ).model_dump(),
        }

    def _category_insights(self, expenses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Top category share, plus a leader vs runner-up comparison."""
        month_total = _total(expenses)

        totals: Dict[str, CategoryStats] = {}
        for t in expenses:
            stats = totals.setdefault(t["category"], CategoryStats(amount=0, count=0))
            stats.amount += t["amount"]
            stats.count += 1

        # Stable sort: equal totals keep first-seen order
        ranked = sorted(totals.items(), key=lambda item: item[1].amount, reverse=True)
        top_name, top_stats = ranked[0]
        share = top_stats.amount / month_total * 100 if month_total > 0 else 0
        plural = "s" if top_stats.count > 1 else ""

        insights = [{
            "type": "category_breakdown",
            "title": "Category Breakdown",
            "description": (
                f"{top_name} represents {share:.1f}% of your spending this month "
                f"across {top_stats.count} transaction{plural}."
            ),
            "data": CategoryBreakdownData(
                top_category=top_name,
                amount=top_stats.amount,
                count=top_stats.count,
                percentage=share,
                totals=totals,
            ).model_dump(),
        }]

        if len(ranked) > 1:
            second_name, second_stats = ranked[1]
            difference_pct = None
            if second_stats.amount > 0:
                difference_pct = (top_stats.amount - second_stats.amount) / second_stats.amount * 100

            if difference_pct is not None:
                description = (
                    f"{top_name} spending is {difference_pct:.1f}% higher than "
                    f"{second_name} this month."
                )
            else:
                description = f"{top_name} spending is leading all other categories this month."

            insights.append({
                "type": "trend_detection",
                "title": "Spending Trend",
                "description": description,
                "data": TrendDetectionData(
                    leader=top_name,
                    runner_up=second_name,
                    leader_amount=top_stats.amount,
                    runner_up_amount=second_stats.amount,
                    difference_pct=difference_pct,
                ).model_dump(),
            })

        return insights

    def _savings_opportunity(self, income: float, expenses: float) -> Dict[str, Any]:
        """Flag a savings rate below the target share of income."""
        if income <= 0 or expenses <= 0:
            return {}

        savings_rate = (income - expenses) / income * 100
        if savings_rate >= SAVINGS_TARGET_RATE * 100:
            return {}

        target = income * SAVINGS_TARGET_RATE
        needed = max(target - (income - expenses), 0)
        return {
            "type": "savings_opportunity",
            "title": "Savings Opportunity",
            "description": (
                f"Saving {SAVINGS_TARGET_RATE * 100:.0f}% of your income would mean setting aside "
                f"{format_amount(target)}. You're currently short by "
                f"{format_amount(needed)} this month."
            ),
            "data": SavingsOpportunityData(
                savings_rate=savings_rate,
                target_savings=target,
                additional_needed=needed,
                income=income,
                expenses=expenses,
            ).model_dump(),
        }

    def _personalized_tip(self, last_week: List[Dict[str, Any]]) -> Dict[str, Any]:
        average = _total(last_week) / len(last_week)
        return {
            "type": "recommendation",
            "title": "Personalized Tip",
            "description": (
                f"Try keeping individual purchases under {format_amount(average)} to stay "
                f"aligned with last week's average spend per transaction."
            ),
            "data": RecommendationData(
                average_transaction=average,
                transaction_count=len(last_week),
            ).model_dump(),
        }
