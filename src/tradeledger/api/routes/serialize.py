"""JSON conversion helpers shared by the route modules."""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from tradeledger.models import Account, ProfitRule, Transaction


def to_json(obj: Any) -> Any:
    """Recursively convert Decimal, datetime, Enum and dataclasses for JSON output."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_json(asdict(obj))
    if isinstance(obj, dict):
        return {k: to_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_json(item) for item in obj]
    return obj


def rule_to_json(rule: ProfitRule) -> dict:
    return {
        "id": rule.id,
        "minBalance": str(rule.min_balance),
        "maxBalance": str(rule.max_balance),
        "profit": str(rule.profit),
        "isActive": rule.is_active,
        "createdAt": rule.created_at.isoformat(),
        "updatedAt": rule.updated_at.isoformat(),
    }


def account_to_json(account: Account) -> dict:
    stats = account.profit_stats
    return {
        "id": account.id,
        "balance": str(account.balance),
        "participating": account.participating,
        "profitStats": {
            "amount": str(stats.amount),
            "percentage": str(stats.percentage),
            "lastComputedAt": (
                stats.last_computed_at.isoformat() if stats.last_computed_at else None
            ),
        },
        "createdAt": account.created_at.isoformat(),
    }


def transaction_to_json(entry: Transaction) -> dict:
    return {
        "id": entry.id,
        "amount": str(entry.amount),
        "kind": entry.kind.value,
        "description": entry.description,
        "ruleId": entry.rule_id,
        "createdAt": entry.created_at.isoformat(),
    }
