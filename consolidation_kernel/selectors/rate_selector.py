"""
Module: consolidation_kernel.selectors.rate_selector
Responsibility: Exchange rate lookup by currency pair, date and rate type.
Architecture position: Kernel > Selectors.

A lookup returns the record with the greatest effective_date on or before
the requested date.  When only the opposite direction is on file, its
inverse is returned.  A missing rate is ``None``; callers decide whether
that is an error, it is never defaulted to 1.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from consolidation_kernel.db.types import round_rate
from consolidation_kernel.exceptions import MissingExchangeRateError
from consolidation_kernel.models.exchange_rate import ExchangeRate, RateType
from consolidation_kernel.selectors.base import BaseSelector

_ONE = Decimal("1")


@dataclass(frozen=True)
class RateQuote:
    from_currency: str
    to_currency: str
    rate: Decimal
    rate_type: RateType
    effective_date: date
    inverted: bool = False


class RateSelector(BaseSelector):
    """Read-only exchange rate repository."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _latest(
        self, from_currency: str, to_currency: str, as_of: date, rate_type: RateType
    ) -> ExchangeRate | None:
        return self.session.execute(
            select(ExchangeRate)
            .where(
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency,
                ExchangeRate.rate_type == rate_type.value,
                ExchangeRate.effective_date <= as_of,
            )
            .order_by(ExchangeRate.effective_date.desc(), ExchangeRate.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def quote(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date,
        rate_type: RateType = RateType.SPOT,
    ) -> RateQuote | None:
        if from_currency == to_currency:
            return RateQuote(from_currency, to_currency, _ONE, rate_type, as_of)

        direct = self._latest(from_currency, to_currency, as_of, rate_type)
        if direct is not None:
            return RateQuote(
                from_currency,
                to_currency,
                Decimal(direct.rate),
                rate_type,
                direct.effective_date,
            )

        opposite = self._latest(to_currency, from_currency, as_of, rate_type)
        if opposite is not None:
            return RateQuote(
                from_currency,
                to_currency,
                round_rate(_ONE / Decimal(opposite.rate)),
                rate_type,
                opposite.effective_date,
                inverted=True,
            )
        return None

    def rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date,
        rate_type: RateType = RateType.SPOT,
    ) -> Decimal | None:
        quote = self.quote(from_currency, to_currency, as_of, rate_type)
        return quote.rate if quote is not None else None

    def require(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date,
        rate_type: RateType = RateType.SPOT,
    ) -> Decimal:
        """Like rate(), but a missing rate raises MissingExchangeRateError."""
        rate = self.rate(from_currency, to_currency, as_of, rate_type)
        if rate is None:
            raise MissingExchangeRateError(
                from_currency, to_currency, str(as_of), RateType(rate_type).value
            )
        return rate
