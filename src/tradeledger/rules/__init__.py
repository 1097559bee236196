"""Balance-tiered profit rules."""

from tradeledger.rules.table import RuleTable, find_overlap, to_decimal

__all__ = ["RuleTable", "find_overlap", "to_decimal"]
