"""Settlement calculation engine."""

from settlement_engine.calculators.bonus import BonusRuleEngine
from settlement_engine.calculators.rate_resolver import RateResolver, SchemeConfigurationError
from settlement_engine.calculators.stats import StatsCalculator, compute_stats

__all__ = [
    "BonusRuleEngine",
    "RateResolver",
    "SchemeConfigurationError",
    "StatsCalculator",
    "compute_stats",
]
