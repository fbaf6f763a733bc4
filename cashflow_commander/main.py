#!/usr/bin/env python3
"""CashFlow Commander CLI - personal finance tracking."""
import argparse
import sys
import logging

from cashflow_commander.api.cashflow_service import CashflowService
from cashflow_commander.api.errors import CashflowError


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    )


def cmd_serve(args):
    """Run the HTTP API."""
    import uvicorn
    uvicorn.run("cashflow_commander.web.api:app", host=args.host, port=args.port)
    return 0


def cmd_insights(args):
    """Regenerate and print a user's insights."""
    with CashflowService() as service:
        identity = service.resolve_identity(args.user_id)
        insights = service.generate_insights(identity)

        if not insights:
            print("Not enough recent transactions to generate insights.")
            return 0

        print(f"Generated {len(insights)} insights:\n")
        for i in insights:
            print(f"  [{i['type']}] {i['title']}")
            print(f"      {i['description']}")

    return 0


def cmd_summary(args):
    """Show a user's balances, this month's totals and budgets."""
    with CashflowService() as service:
        identity = service.resolve_identity(args.user_id)
        summary = service.get_summary(identity)

        print("=" * 50)
        print("CASHFLOW SUMMARY")
        print("=" * 50)
        print(f"\nAccounts:           {summary['accounts']}")
        print(f"Total balance:      ${summary['total_balance']:,.2f}")
        print(f"Income (month):     ${summary['income_this_month']:,.2f}")
        print(f"Expenses (month):   ${summary['expenses_this_month']:,.2f}")
        print(f"Net (month):        ${summary['net_this_month']:,.2f}")

        if summary["budgets"]:
            print("\n" + "-" * 50)
            print("BUDGETS")
            print("-" * 50)
            for b in summary["budgets"]:
                print(
                    f"  {b['category']:20s}  ${b['spent']:10,.2f} of ${b['amount']:10,.2f}"
                    f"  ({b['percentage']:.0f}%)"
                )

    return 0


def cmd_categories(args):
    """Seed default categories if needed, then list them."""
    with CashflowService() as service:
        identity = service.resolve_identity(args.user_id)
        created = service.initialize_default_categories(identity)
        if created:
            print(f"Created {created} default categories.\n")

        print("Categories:")
        for c in service.list_categories(identity):
            print(f"  {c['icon']} {c['name']:20s} ({c['type']})")

    return 0


def cmd_set_role(args):
    """Change a user's role."""
    with CashflowService() as service:
        user = service.set_user_role(args.user_id, args.role)
        print(f"User {user['id']} now has role '{user['role']}'")

    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="CashFlow Commander - personal finance tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cashflow serve                        Run the HTTP API on port 8000
  cashflow summary user_123             Show balances and budgets
  cashflow insights user_123            Regenerate spending insights
  cashflow categories user_123          Seed and list categories
  cashflow set-role user_123 founder    Grant founder rights
"""
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port")
    serve_parser.set_defaults(func=cmd_serve)

    # Insights command
    insights_parser = subparsers.add_parser("insights", help="Generate spending insights")
    insights_parser.add_argument("user_id", help="User ID")
    insights_parser.set_defaults(func=cmd_insights)

    # Summary command
    summary_parser = subparsers.add_parser("summary", help="Show a user's summary")
    summary_parser.add_argument("user_id", help="User ID")
    summary_parser.set_defaults(func=cmd_summary)

    # Categories command
    cats_parser = subparsers.add_parser("categories", help="Seed and list categories")
    cats_parser.add_argument("user_id", help="User ID")
    cats_parser.set_defaults(func=cmd_categories)

    # Set-role command
    role_parser = subparsers.add_parser("set-role", help="Change a user's role")
    role_parser.add_argument("user_id", help="User ID")
    role_parser.add_argument("role", help="user or founder")
    role_parser.set_defaults(func=cmd_set_role)

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except CashflowError as e:
        print(f"Error: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
