"""Insurer/patient cost split for a billed amount.

Everything here is a pure function of its inputs: no database, no network.
A billed gross must already be in minor units; a third decimal place is
rejected rather than rounded. Line pricing (unit price times quantity) and
the percentage share are rounded half-up to two places. The insurer's share is
always the rounded figure, so ``insurer_amount + patient_amount ==
gross_amount`` holds exactly and any remainder lands on the patient.
"""
import logging
from decimal import Decimal
from typing import Optional

from insurance_claims.currency import Amount, parse_currency, to_decimal, to_exact_money, to_money
from insurance_claims.errors import InvalidAmount, InvalidCoverageRule
from insurance_claims.model import AdjudicationResult, CopayStrategy, CoverageRule, MedicalCodeEntry

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def _strategy(rule: CoverageRule) -> CopayStrategy:
    # rules loaded from storage or built with model_construct skip pydantic validation
    strategy = rule.copay_strategy()
    if rule.copay_amount is not None and to_decimal(rule.copay_amount) < 0:
        raise InvalidCoverageRule(f"Coverage rule {rule.service_id}/{rule.insurer_id} has a negative copay_amount")
    if rule.copay_percentage is not None and not (0 <= to_decimal(rule.copay_percentage) <= HUNDRED):
        raise InvalidCoverageRule(
            f"Coverage rule {rule.service_id}/{rule.insurer_id} has copay_percentage outside 0-100"
        )
    if rule.max_coverage_amount is not None and to_decimal(rule.max_coverage_amount) < 0:
        raise InvalidCoverageRule(
            f"Coverage rule {rule.service_id}/{rule.insurer_id} has a negative max_coverage_amount"
        )
    return strategy


def adjudicate(gross_amount: Amount, rule: CoverageRule, currency) -> AdjudicationResult:
    currency = parse_currency(currency)
    # sign first: rounding would turn -0.004 into -0.00 and hide it
    if to_decimal(gross_amount) < 0:
        raise InvalidAmount(f"Gross amount must not be negative, got {gross_amount}")
    gross = to_exact_money(gross_amount)
    strategy = _strategy(rule)

    if strategy is CopayStrategy.fixed:
        patient = min(to_money(rule.copay_amount), gross)
        insurer = gross - patient
    else:
        insurer = to_money(gross * to_decimal(rule.copay_percentage) / HUNDRED)
        patient = gross - insurer

    capped = False
    if rule.max_coverage_amount is not None:
        cap = to_money(rule.max_coverage_amount)
        if insurer > cap:
            patient += insurer - cap
            insurer = cap
            capped = True

    return AdjudicationResult(
        gross_amount=gross,
        insurer_amount=insurer,
        patient_amount=patient,
        currency=currency,
        copay_strategy=strategy,
        pre_auth_required=bool(rule.pre_auth_required),
        deductible_applies=bool(rule.deductible_applies),
        max_coverage_capped=capped,
    )


def price_line(unit_price: Amount, quantity: int = 1) -> Decimal:
    """Gross amount for ``quantity`` units of a priced service or medication."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidAmount(f"Quantity must be a whole number of at least 1, got {quantity!r}")
    price = to_decimal(unit_price)
    if price < 0:
        raise InvalidAmount(f"Unit price must not be negative, got {price}")
    return to_money(price * quantity)


def adjudicate_service(rule: CoverageRule, currency, entry: Optional[MedicalCodeEntry] = None,
                       unit_price: Optional[Amount] = None, quantity: int = 1) -> AdjudicationResult:
    """Adjudicate a line whose price is either given or taken from the code registry.

    An explicit ``unit_price`` wins. Otherwise the registry entry's
    ``standard_amount`` is used, and a missing one is an ``InvalidAmount``
    rather than a silent zero.
    """
    if unit_price is None:
        if entry is None or entry.standard_amount is None:
            code = f"{entry.code_type.value} code {entry.code}" if entry is not None else "service"
            raise InvalidAmount(f"No price given and {code} has no standard amount")
        unit_price = entry.standard_amount
    gross = price_line(unit_price, quantity)
    result = adjudicate(gross, rule, currency)
    logger.debug(
        "Adjudicated %s/%s: gross=%s insurer=%s patient=%s",
        rule.service_id, rule.insurer_id, result.gross_amount, result.insurer_amount, result.patient_amount,
    )
    return result
