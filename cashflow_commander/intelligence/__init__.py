"""Budget math and spending insights."""
