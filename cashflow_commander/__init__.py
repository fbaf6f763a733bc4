"""CashFlow Commander - personal finance tracking backend."""
