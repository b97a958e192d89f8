# storefront/services/currency_service.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Tuple

from storefront.domain.enums import Currency, PaymentMethod
from storefront.domain.errors import ExternalServiceError, ValidationError
from storefront.services.exchange_rate_client import ExchangeRateClient
from storefront.utils.settings import EXCHANGE_RATE_CACHE_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")

PAYMENT_METHOD_CURRENCY = {
    PaymentMethod.RAZORPAY.value: Currency.INR.value,
    PaymentMethod.POLAR.value: Currency.USD.value,
}
CURRENCY_PAYMENT_METHOD = {c: m for m, c in PAYMENT_METHOD_CURRENCY.items()}

DEFAULT_RATES = {
    ("inr", "usd"): Decimal("0.012"),
    ("usd", "inr"): Decimal("83.33"),
}


@dataclass(frozen=True)
class ExchangeRate:
    from_currency: str
    to_currency: str
    rate: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class ConversionResult:
    original_amount: Decimal
    converted_amount: Decimal
    from_currency: str
    to_currency: str
    exchange_rate: Decimal


def _code(value) -> str:
    return value.value if isinstance(value, Currency) else str(value).lower()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CurrencyService:
    """
    Currency conversion with a process-wide rate cache.

    Rate lookup order: fresh cache entry, live source, stale cache entry,
    built-in default. Each cache write replaces one key in a single step,
    so concurrent callers never observe a half-written entry.
    """

    def __init__(
        self,
        source: ExchangeRateClient | None = None,
        cache_seconds: int = EXCHANGE_RATE_CACHE_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source if source is not None else ExchangeRateClient()
        self.cache_duration = timedelta(seconds=cache_seconds)
        self.clock = clock
        self._rates: Dict[Tuple[str, str], ExchangeRate] = self._default_rates()

    def _default_rates(self) -> Dict[Tuple[str, str], ExchangeRate]:
        now = self.clock()
        return {
            pair: ExchangeRate(pair[0], pair[1], rate, now)
            for pair, rate in DEFAULT_RATES.items()
        }

    def _is_fresh(self, entry: ExchangeRate) -> bool:
        return self.clock() - entry.timestamp < self.cache_duration

    @staticmethod
    def _check_supported(*codes: str) -> None:
        supported = {c.value for c in Currency}
        for code in codes:
            if code not in supported:
                raise ValidationError(f"Unsupported currency: {code}")

    def get_exchange_rate(self, from_currency, to_currency) -> Decimal:
        src, dst = _code(from_currency), _code(to_currency)
        if src == dst:
            return Decimal(1)
        self._check_supported(src, dst)

        key = (src, dst)
        cached = self._rates.get(key)
        if cached and self._is_fresh(cached):
            return cached.rate

        try:
            rate = self.source.fetch_rate(src, dst)
        except ExternalServiceError:
            if cached:
                logger.warning(f"Using stale exchange rate {src}->{dst}: {cached.rate}")
                return cached.rate

            default = DEFAULT_RATES.get(key)
            if default is not None:
                logger.warning(f"Using default exchange rate {src}->{dst}: {default}")
                return default
            raise

        self._rates[key] = ExchangeRate(src, dst, rate, self.clock())
        logger.info(f"Cached exchange rate {src}->{dst}: {rate}")
        return rate

    def convert_currency(self, amount, from_currency, to_currency) -> ConversionResult:
        src, dst = _code(from_currency), _code(to_currency)
        original = Decimal(str(amount))

        if src == dst:
            return ConversionResult(original, original, src, dst, Decimal(1))
        self._check_supported(src, dst)

        try:
            # the provider's own conversion of the exact amount rounds better than amount * rate
            converted = self.source.fetch_converted_amount(original, src, dst)
        except ExternalServiceError as e:
            logger.warning(f"Direct conversion {src}->{dst} failed, using rate: {e}")
            rate = self.get_exchange_rate(src, dst)
            converted = original * rate
        else:
            rate = self.get_exchange_rate(src, dst)

        return ConversionResult(
            original_amount=original,
            converted_amount=converted.quantize(CENT, rounding=ROUND_HALF_UP),
            from_currency=src,
            to_currency=dst,
            exchange_rate=rate,
        )

    def convert_multiple(self, conversions: Iterable[Tuple]) -> List[ConversionResult]:
        return [self.convert_currency(amount, src, dst) for amount, src, dst in conversions]

    def get_conversion_summary(self, amount, from_currency, to_currency) -> str:
        r = self.convert_currency(amount, from_currency, to_currency)
        return (
            f"{r.original_amount} {r.from_currency} = {r.converted_amount} {r.to_currency} "
            f"(rate: {r.exchange_rate})"
        )

    def set_exchange_rate(self, from_currency, to_currency, rate) -> None:
        src, dst = _code(from_currency), _code(to_currency)
        value = Decimal(str(rate))
        if value <= 0:
            raise ValidationError("Exchange rate must be positive")
        self._rates[(src, dst)] = ExchangeRate(src, dst, value, self.clock())

    def clear_cache(self) -> None:
        self._rates = self._default_rates()

    def get_cached_rates(self) -> List[ExchangeRate]:
        return list(self._rates.values())

    def is_api_configured(self) -> bool:
        return self.source.is_configured

    @staticmethod
    def get_currency_by_payment_method(payment_method) -> str:
        key = payment_method.value if isinstance(payment_method, PaymentMethod) else payment_method
        try:
            return PAYMENT_METHOD_CURRENCY[key]
        except KeyError:
            raise ValidationError(f"Unknown payment method: {payment_method}") from None

    @staticmethod
    def get_payment_method_by_currency(currency) -> str:
        try:
            return CURRENCY_PAYMENT_METHOD[_code(currency)]
        except KeyError:
            raise ValidationError(f"No payment method for currency: {currency}") from None
