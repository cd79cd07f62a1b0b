"""Change governance: risk scoring, policy rules and release memory."""
