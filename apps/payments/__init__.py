"""Stripe payment reconciliation: webhook intake, event dedup and booking transitions."""
