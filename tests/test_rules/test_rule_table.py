"""Tests for RuleTable: lookup, range validation and overlap rejection."""

from decimal import Decimal

import pytest

from tradeledger.exceptions import ConflictError, NotFoundError, ValidationError
from tradeledger.rules.table import RuleTable, find_overlap, to_decimal


def D(value: str) -> Decimal:
    return Decimal(value)


class TestResolve:
    @pytest.mark.asyncio
    async def test_balance_inside_range(self, rule_table: RuleTable) -> None:
        rule = await rule_table.create_rule(D("100"), D("200"), D("10"))
        resolution = await rule_table.resolve(D("150"))
        assert resolution.profit == D("10")
        assert resolution.rule_id == rule.id
        assert resolution.matched

    @pytest.mark.asyncio
    async def test_bounds_are_inclusive(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"))
        assert (await rule_table.resolve(D("100"))).profit == D("10")
        assert (await rule_table.resolve(D("200"))).profit == D("10")

    @pytest.mark.asyncio
    async def test_no_match_is_zero(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"))
        resolution = await rule_table.resolve(D("99.99"))
        assert resolution.profit == D("0")
        assert resolution.rule_id is None
        assert not resolution.matched

    @pytest.mark.asyncio
    async def test_inactive_rules_are_ignored(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"), is_active=False)
        assert (await rule_table.resolve(D("150"))).rule_id is None

    @pytest.mark.asyncio
    async def test_negative_profit_rule(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("0"), D("50"), D("-2.5"))
        assert (await rule_table.resolve(D("20"))).profit == D("-2.5")

    @pytest.mark.asyncio
    async def test_legacy_overlap_prefers_lowest_min_then_id(
        self, rule_table: RuleTable
    ) -> None:
        # Inactive rules skip the overlap check; activate them through the store
        low = await rule_table.create_rule(D("100"), D("300"), D("5"), is_active=False)
        high = await rule_table.create_rule(D("150"), D("250"), D("9"), is_active=False)
        store = rule_table._store
        for rule in (high, low):
            rule.is_active = True
            await store.save_rule(rule)

        resolution = await rule_table.resolve(D("200"))
        assert resolution.rule_id == low.id
        assert resolution.profit == D("5")


class TestCreateRule:
    @pytest.mark.asyncio
    async def test_min_must_be_below_max(self, rule_table: RuleTable) -> None:
        with pytest.raises(ValidationError):
            await rule_table.create_rule(D("200"), D("200"), D("1"))
        assert await rule_table.list_rules() == []

    @pytest.mark.asyncio
    async def test_overlap_rejected_and_table_unchanged(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"))
        before = await rule_table.list_rules()

        with pytest.raises(ConflictError):
            await rule_table.create_rule(D("150"), D("250"), D("5"))

        assert await rule_table.list_rules() == before

    @pytest.mark.asyncio
    async def test_shared_boundary_is_an_overlap(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"))
        with pytest.raises(ConflictError):
            await rule_table.create_rule(D("200"), D("300"), D("5"))

    @pytest.mark.asyncio
    async def test_adjacent_ranges_allowed(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"))
        await rule_table.create_rule(D("200.01"), D("300"), D("5"))
        rules = await rule_table.list_rules()
        assert [r.min_balance for r in rules] == [D("100"), D("200.01")]

    @pytest.mark.asyncio
    async def test_inactive_rule_may_overlap(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"))
        rule = await rule_table.create_rule(D("150"), D("250"), D("5"), is_active=False)
        assert rule.is_active is False
        assert len(await rule_table.list_rules()) == 2


class TestUpdateAndToggle:
    @pytest.mark.asyncio
    async def test_update_preserves_omitted_fields(self, rule_table: RuleTable) -> None:
        rule = await rule_table.create_rule(D("100"), D("200"), D("10"))
        updated = await rule_table.update_rule(rule.id, profit=D("12"))
        assert updated.min_balance == D("100")
        assert updated.max_balance == D("200")
        assert updated.profit == D("12")
        assert (await rule_table.get_rule(rule.id)).profit == D("12")

    @pytest.mark.asyncio
    async def test_update_does_not_conflict_with_itself(self, rule_table: RuleTable) -> None:
        rule = await rule_table.create_rule(D("100"), D("200"), D("10"))
        updated = await rule_table.update_rule(rule.id, max_balance=D("180"))
        assert updated.max_balance == D("180")

    @pytest.mark.asyncio
    async def test_update_into_overlap_rejected(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"))
        other = await rule_table.create_rule(D("300"), D("400"), D("20"))
        with pytest.raises(ConflictError):
            await rule_table.update_rule(other.id, min_balance=D("150"))
        assert (await rule_table.get_rule(other.id)).min_balance == D("300")

    @pytest.mark.asyncio
    async def test_update_inverted_bounds_rejected(self, rule_table: RuleTable) -> None:
        rule = await rule_table.create_rule(D("100"), D("200"), D("10"))
        with pytest.raises(ValidationError):
            await rule_table.update_rule(rule.id, min_balance=D("250"))

    @pytest.mark.asyncio
    async def test_toggle_round_trip(self, rule_table: RuleTable) -> None:
        rule = await rule_table.create_rule(D("100"), D("200"), D("10"))
        assert (await rule_table.toggle_rule(rule.id)).is_active is False
        assert (await rule_table.toggle_rule(rule.id)).is_active is True

    @pytest.mark.asyncio
    async def test_activating_into_overlap_rejected(self, rule_table: RuleTable) -> None:
        await rule_table.create_rule(D("100"), D("200"), D("10"))
        dormant = await rule_table.create_rule(D("150"), D("250"), D("5"), is_active=False)
        with pytest.raises(ConflictError):
            await rule_table.toggle_rule(dormant.id)
        assert (await rule_table.get_rule(dormant.id)).is_active is False

    @pytest.mark.asyncio
    async def test_unknown_rule(self, rule_table: RuleTable) -> None:
        with pytest.raises(NotFoundError):
            await rule_table.update_rule(99, profit=D("1"))
        with pytest.raises(NotFoundError):
            await rule_table.delete_rule(99)
        with pytest.raises(NotFoundError):
            await rule_table.toggle_rule(99)

    @pytest.mark.asyncio
    async def test_delete(self, rule_table: RuleTable) -> None:
        rule = await rule_table.create_rule(D("100"), D("200"), D("10"))
        await rule_table.delete_rule(rule.id)
        assert await rule_table.list_rules() == []


class TestHelpers:
    def test_to_decimal_accepts_strings_and_numbers(self) -> None:
        assert to_decimal("10.5", "profit") == D("10.5")
        assert to_decimal(7, "profit") == D("7")
        assert to_decimal(0.1, "profit") == D("0.1")

    @pytest.mark.parametrize("value", ["abc", None, "NaN", "Infinity", [1]])
    def test_to_decimal_rejects_garbage(self, value: object) -> None:
        with pytest.raises(ValidationError):
            to_decimal(value, "profit")

    def test_find_overlap_on_empty_table(self) -> None:
        assert find_overlap(D("0"), D("10"), []) is None
