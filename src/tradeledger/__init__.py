"""Ledger backend with the scheduled daily settlement engine."""
