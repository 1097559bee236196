"""Profit rule table: balance range lookup and administrative CRUD.

Active rules must not overlap. Both bounds are inclusive, so [100, 200] and
[200, 300] collide at 200. The check runs at write time inside the same
transaction as the write, so concurrent admins cannot both slip in
colliding ranges.

If overlapping active rules exist anyway (rows written before the check,
or edited directly in the database), resolve() picks the rule with the
lowest min_balance, then the lowest id.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from tradeledger.data.rule_store import RuleStore
from tradeledger.exceptions import ConflictError, ValidationError
from tradeledger.logging import get_logger
from tradeledger.models import ProfitRule, RuleResolution

logger = get_logger(__name__)

_NO_RULE = RuleResolution(profit=Decimal("0"))


def to_decimal(value: object, field: str) -> Decimal:
    """Parse a caller-supplied amount, rejecting floats' binary noise and non-finite values."""
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number, got {value!r}") from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite")
    return result


def validate_bounds(min_balance: Decimal, max_balance: Decimal) -> None:
    if min_balance >= max_balance:
        raise ValidationError("minBalance must be less than maxBalance")


def find_overlap(
    min_balance: Decimal,
    max_balance: Decimal,
    rules: list[ProfitRule],
    exclude_id: int | None = None,
) -> ProfitRule | None:
    """Return the first active rule whose range collides with [min_balance, max_balance]."""
    for rule in rules:
        if rule.id == exclude_id or not rule.is_active:
            continue
        if rule.overlaps(min_balance, max_balance):
            return rule
    return None


class RuleTable:
    """Decision table consulted by the settlement engine.

    Args:
        store: Rule persistence.
        clock: Returns the current aware datetime (injected for tests).
    """

    def __init__(
        self,
        store: RuleStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def resolve(self, balance: Decimal) -> RuleResolution:
        """Return the profit for balance and the id of the rule that produced it.

        No matching active rule is a normal outcome: profit 0, rule_id None.
        """
        rules = await self._store.list_rules(active_only=True)
        # list_rules is ordered by (min_balance, id): first hit is the tie-break winner
        for rule in rules:
            if rule.contains(balance):
                return RuleResolution(profit=rule.profit, rule_id=rule.id)
        return _NO_RULE

    async def list_rules(self) -> list[ProfitRule]:
        return await self._store.list_rules()

    async def get_rule(self, rule_id: int) -> ProfitRule:
        return await self._store.get_rule(rule_id)

    async def create_rule(
        self,
        min_balance: Decimal,
        max_balance: Decimal,
        profit: Decimal,
        is_active: bool = True,
    ) -> ProfitRule:
        """Add a rule. Raises ValidationError or ConflictError without writing."""
        validate_bounds(min_balance, max_balance)
        async with self._store.database.transaction():
            if is_active:
                self._ensure_no_overlap(
                    min_balance, max_balance, await self._store.list_rules(active_only=True)
                )
            rule = await self._store.insert_rule(
                min_balance, max_balance, profit, is_active, self._clock()
            )
        return rule

    async def update_rule(
        self,
        rule_id: int,
        min_balance: Decimal | None = None,
        max_balance: Decimal | None = None,
        profit: Decimal | None = None,
        is_active: bool | None = None,
    ) -> ProfitRule:
        """Patch the given fields of a rule. Omitted fields keep their value."""
        async with self._store.database.transaction():
            rule = await self._store.get_rule(rule_id)
            if min_balance is not None:
                rule.min_balance = min_balance
            if max_balance is not None:
                rule.max_balance = max_balance
            if profit is not None:
                rule.profit = profit
            if is_active is not None:
                rule.is_active = is_active
            validate_bounds(rule.min_balance, rule.max_balance)
            if rule.is_active:
                self._ensure_no_overlap(
                    rule.min_balance,
                    rule.max_balance,
                    await self._store.list_rules(active_only=True),
                    exclude_id=rule.id,
                )
            rule.updated_at = self._clock()
            return await self._store.save_rule(rule)

    async def delete_rule(self, rule_id: int) -> None:
        await self._store.delete_rule(rule_id)

    async def toggle_rule(self, rule_id: int) -> ProfitRule:
        """Flip a rule's active flag. Activating is subject to the overlap check."""
        async with self._store.database.transaction():
            rule = await self._store.get_rule(rule_id)
            rule.is_active = not rule.is_active
            if rule.is_active:
                self._ensure_no_overlap(
                    rule.min_balance,
                    rule.max_balance,
                    await self._store.list_rules(active_only=True),
                    exclude_id=rule.id,
                )
            rule.updated_at = self._clock()
            saved = await self._store.save_rule(rule)
        logger.info("profit_rule_toggled", rule_id=rule_id, is_active=saved.is_active)
        return saved

    @staticmethod
    def _ensure_no_overlap(
        min_balance: Decimal,
        max_balance: Decimal,
        active_rules: list[ProfitRule],
        exclude_id: int | None = None,
    ) -> None:
        clash = find_overlap(min_balance, max_balance, active_rules, exclude_id)
        if clash is not None:
            logger.warning(
                "profit_rule_overlap_rejected",
                min_balance=str(min_balance),
                max_balance=str(max_balance),
                conflicting_rule_id=clash.id,
            )
            raise ConflictError(
                f"Balance range {min_balance}-{max_balance} overlaps active rule "
                f"{clash.id} ({clash.min_balance}-{clash.max_balance})"
            )
