"""Currency conversion for normalizing expense amounts to a company base currency.

Conversion failures are never papered over: an unknown currency, an
unreachable rate service or a bad amount all raise ``ConversionError`` so the
enclosing submission aborts instead of silently using a 1:1 rate.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Protocol

import httpx

from expenseflow.core.config import settings
from expenseflow.core.exceptions import ConversionError

logger = logging.getLogger(__name__)


class ExchangeRateProvider(Protocol):
    def get_rate(self, source_currency: str, target_currency: str) -> Decimal:
        """Return the multiplier converting one unit of source into target."""
        ...


# ─── Live provider ───

class ExchangeRateApiProvider:
    """Fetches rates from an exchangerate-api compatible endpoint.

    The endpoint returns ``{"base": ..., "rates": {"EUR": 0.92, ...}}`` for the
    base currency substituted into ``url``.
    """

    def __init__(self, url: str | None = None, timeout: float | None = None):
        self.url = url or settings.EXCHANGE_RATE_API_URL
        self.timeout = timeout if timeout is not None else settings.EXCHANGE_RATE_TIMEOUT_SECONDS

    def get_rate(self, source_currency: str, target_currency: str) -> Decimal:
        source = source_currency.upper()
        target = target_currency.upper()
        try:
            response = httpx.get(self.url.format(base=source), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Exchange rate lookup failed for %s->%s: %s", source, target, exc)
            raise ConversionError(
                f"Failed to fetch exchange rate for {source} to {target}.",
                details={"source_currency": source, "target_currency": target},
            ) from exc

        rate = (payload.get("rates") or {}).get(target)
        if rate is None:
            raise ConversionError(
                f"Exchange rate not found for {source} to {target}.",
                details={"source_currency": source, "target_currency": target},
            )
        return _to_rate(rate, source, target)


# ─── Static provider (local development) ───

# Static mid-market rates against USD
USD_RATES: dict[str, Decimal] = {
    "USD": Decimal("1.0"),
    "EUR": Decimal("1.08"),
    "GBP": Decimal("1.27"),
    "CAD": Decimal("0.74"),
    "AUD": Decimal("0.65"),
    "JPY": Decimal("0.0067"),
    "CNY": Decimal("0.14"),
    "INR": Decimal("0.012"),
    "CHF": Decimal("1.13"),
}


class StaticRateProvider:
    """Cross rates derived from a fixed USD-pivot table."""

    def __init__(self, usd_rates: dict[str, Decimal] | None = None):
        self.usd_rates = usd_rates or USD_RATES

    def get_rate(self, source_currency: str, target_currency: str) -> Decimal:
        source = source_currency.upper()
        target = target_currency.upper()
        missing = [c for c in (source, target) if c not in self.usd_rates]
        if missing:
            raise ConversionError(
                f"Unsupported currency: {', '.join(missing)}.",
                details={"source_currency": source, "target_currency": target},
            )
        return self.usd_rates[source] / self.usd_rates[target]


def get_rate_provider() -> ExchangeRateProvider:
    if settings.FX_PROVIDER == "static":
        return StaticRateProvider()
    return ExchangeRateApiProvider()


# ─── Conversion ───

def convert(
    amount: Decimal | float | int,
    source_currency: str,
    target_currency: str,
    provider: ExchangeRateProvider | None = None,
) -> Decimal | float | int:
    """Convert ``amount`` from ``source_currency`` into ``target_currency``.

    Same-currency conversion returns ``amount`` itself, untouched and without
    consulting any provider. Cross-currency results are Decimal.

    Raises:
        ConversionError: amount is not a finite positive number, or no rate
            could be obtained.
    """
    value = _to_amount(amount)

    if source_currency.upper() == target_currency.upper():
        return amount

    provider = provider or get_rate_provider()
    rate = provider.get_rate(source_currency, target_currency)
    return value * rate


def _to_amount(amount: Decimal | float | int) -> Decimal:
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConversionError(f"Invalid amount {amount!r}.") from exc
    if not value.is_finite() or value <= 0:
        raise ConversionError(
            f"Amount must be a finite positive number, got {amount!r}.",
            details={"amount": str(amount)},
        )
    return value


def _to_rate(rate, source: str, target: str) -> Decimal:
    try:
        value = Decimal(str(rate))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConversionError(f"Malformed exchange rate for {source} to {target}: {rate!r}.") from exc
    if not value.is_finite() or value <= 0:
        raise ConversionError(f"Invalid exchange rate for {source} to {target}: {rate!r}.")
    return value
