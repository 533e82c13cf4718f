# FILE: services/market.py
"""
FX rate source and USYC yield source.

Rates and APY are treated as facts provided from outside the core; these
static sources stand in for an oracle until one is wired up.
"""

from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from typing import Dict, Optional, Tuple

import config
from core.currency import normalize_symbol
from core.errors import ResolutionFailure
from models.proposal import RateQuote
from services.chain_gateway import RateSource, YieldSource

SIX_PLACES = Decimal("0.000001")

DEFAULT_RATES: Dict[Tuple[str, str], str] = {
    ("EURC", "USDC"): "1.05",
    ("USDC", "EURC"): "0.95",
}


def quantize_amount(value: Decimal) -> str:
    return str(value.quantize(SIX_PLACES, rounding=ROUND_DOWN))


class StaticRateSource(RateSource):
    def __init__(
        self,
        rates: Optional[Dict[Tuple[str, str], str]] = None,
        price_impact: str = "0.001",
        gas_estimate: Optional[str] = None,
    ):
        self.rates = {pair: Decimal(rate) for pair, rate in (rates or DEFAULT_RATES).items()}
        self.price_impact = price_impact
        self.gas_estimate = gas_estimate or config.FALLBACK_GAS_ESTIMATE

    async def get_rate_quote(self, from_token: str, to_token: str, amount: str) -> RateQuote:
        pair = (normalize_symbol(from_token), normalize_symbol(to_token))
        rate = self.rates.get(pair)
        if rate is None:
            raise ResolutionFailure(
                reason="unsupported_pair",
                message=f"No exchange rate is available for {from_token} → {to_token}.",
                detail={"from": from_token, "to": to_token},
            )
        return RateQuote(
            from_token=pair[0],
            to_token=pair[1],
            amount=amount,
            expected_amount=quantize_amount(Decimal(amount) * rate),
            price_impact=self.price_impact,
            gas_estimate=self.gas_estimate,
            gas_estimate_source="fallback",
        )


class StaticYieldSource(YieldSource):
    """
    Fixed APY with deposit dates kept per address for the lifetime of the process.
    """

    def __init__(self, apy: Optional[str] = None):
        self.apy = apy or config.DEFAULT_APY
        self.deposit_dates: Dict[str, datetime] = {}

    async def get_current_apy(self) -> str:
        return self.apy

    async def get_deposit_date(self, address: str) -> Optional[datetime]:
        return self.deposit_dates.get(address.lower())

    async def record_deposit(self, address: str, when: datetime) -> None:
        # Earliest deposit wins so the holding period is never shortened
        self.deposit_dates.setdefault(address.lower(), when)
