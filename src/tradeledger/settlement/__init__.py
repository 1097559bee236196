"""Settlement and deactivation engines."""

from tradeledger.settlement.calculator import calculate_percentage
from tradeledger.settlement.deactivation import DeactivationEngine
from tradeledger.settlement.engine import SettlementEngine

__all__ = ["DeactivationEngine", "SettlementEngine", "calculate_percentage"]
