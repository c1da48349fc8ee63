"""
Capital-gains tax estimation for mutual fund redemptions.

Rates and thresholds come from TaxConfig so that rule changes (new budget
year, different jurisdiction) need no code change. Defaults follow the India
equity rules: gains on units held more than 365 days are long term, with the
first 1,25,000 of long-term gain exempt and the rest taxed at 12.5%;
short-term gains are taxed at 20%.

Note: loss harvesting and set-off of losses against other gains are not
modelled; a loss simply yields zero tax.
"""

from decimal import Decimal
from typing import Optional

from mf_pilot.analytics.rounding import quantize, to_decimal
from mf_pilot.exceptions import InvalidInputError
from mf_pilot.models import AssetClass, GainType, TaxConfig, TaxLiability


CURRENCY_PLACES = 2


def determine_gain_type(
    holding_period_days: int,
    asset_class: AssetClass = AssetClass.EQUITY,
    tax_config: Optional[TaxConfig] = None,
) -> GainType:
    """
    Classify a holding as short-term or long-term.

    Args:
        holding_period_days: Days since purchase
        asset_class: Asset class of the fund
        tax_config: Tax rules (defaults to India rules)

    Returns:
        GainType.LONG_TERM if held longer than the rule's threshold
    """
    rule = _rule_for(asset_class, tax_config or TaxConfig())
    if holding_period_days > rule.long_term_days:
        return GainType.LONG_TERM
    return GainType.SHORT_TERM


def compute_tax_liability(
    profit_loss: Decimal | float | int,
    holding_period_days: int,
    asset_class: AssetClass = AssetClass.EQUITY,
    tax_config: Optional[TaxConfig] = None,
    currency_places: int = CURRENCY_PLACES,
) -> TaxLiability:
    """
    Estimate tax payable if the position were redeemed now.

    Args:
        profit_loss: Unrealized gain (negative for a loss)
        holding_period_days: Days since purchase (non-negative)
        asset_class: Asset class selecting the tax rule
        tax_config: Tax rules (defaults to India rules)
        currency_places: Decimal places kept for taxable gain and tax

    Returns:
        TaxLiability with long-term flag, applicable rate, taxable gain and
        estimated tax

    Raises:
        InvalidInputError: If holding_period_days is negative or no rule is
            configured for asset_class

    Example:
        >>> compute_tax_liability(200000, 400).estimated_tax
        Decimal('9375.00')
    """
    if holding_period_days < 0:
        raise InvalidInputError(
            f"holding_period_days must be non-negative, got {holding_period_days}"
        )

    tax_config = tax_config or TaxConfig()
    rule = _rule_for(asset_class, tax_config)
    gain = to_decimal(profit_loss)

    is_long_term = holding_period_days > rule.long_term_days
    if is_long_term:
        tax_rate = rule.long_term_rate
        taxable_gain = max(Decimal("0"), gain - rule.exemption_threshold)
    else:
        tax_rate = rule.short_term_rate
        taxable_gain = max(Decimal("0"), gain)

    estimated_tax = taxable_gain * tax_rate / Decimal("100")

    return TaxLiability(
        is_long_term=is_long_term,
        tax_rate=tax_rate,
        taxable_gain=quantize(taxable_gain, currency_places),
        estimated_tax=quantize(estimated_tax, currency_places),
    )


def post_tax_gain(
    profit_loss: Decimal,
    liability: TaxLiability,
) -> Decimal:
    """Gain remaining after the estimated tax is paid."""
    return profit_loss - liability.estimated_tax


def _rule_for(asset_class: AssetClass, tax_config: TaxConfig):
    rule = tax_config.rule_for(asset_class)
    if rule is None:
        raise InvalidInputError(f"No tax rule configured for asset class {asset_class.value}")
    return rule
