from decimal import Decimal

import pytest

from storefront.domain.enums import Currency, PaymentMethod
from storefront.domain.errors import ExternalServiceError, ValidationError
from storefront.services.currency_service import CurrencyService


def test_same_currency_conversion_is_identity(currency_service, rate_source):
    for amount in (Decimal("0"), Decimal("1.5"), Decimal("129.99")):
        for code in ("inr", "usd"):
            r = currency_service.convert_currency(amount, code, code)
            assert r.original_amount == amount
            assert r.converted_amount == amount
            assert r.exchange_rate == 1
    assert rate_source.rate_calls == 0
    assert rate_source.convert_calls == 0


def test_same_currency_rate_is_exactly_one(currency_service):
    assert currency_service.get_exchange_rate("usd", Currency.USD) == Decimal(1)


def test_set_exchange_rate_is_returned_until_expiry(currency_service, rate_source, clock):
    currency_service.set_exchange_rate("inr", "usd", "0.02")
    assert currency_service.get_exchange_rate("inr", "usd") == Decimal("0.02")
    assert rate_source.rate_calls == 0

    clock.advance(59 * 60)
    assert currency_service.get_exchange_rate("inr", "usd") == Decimal("0.02")

    clock.advance(2 * 60)
    # expired: the live source wins and is cached
    assert currency_service.get_exchange_rate("inr", "usd") == Decimal("0.012")
    assert rate_source.rate_calls == 1


@pytest.mark.parametrize("rate", [0, -1, "-0.5"])
def test_set_exchange_rate_rejects_non_positive(currency_service, rate):
    with pytest.raises(ValidationError):
        currency_service.set_exchange_rate("inr", "usd", rate)


def test_clear_cache_reseeds_defaults(currency_service):
    currency_service.set_exchange_rate("inr", "usd", "0.5")
    currency_service.clear_cache()
    assert currency_service.get_exchange_rate("inr", "usd") == Decimal("0.012")
    pairs = {(r.from_currency, r.to_currency) for r in currency_service.get_cached_rates()}
    assert pairs == {("inr", "usd"), ("usd", "inr")}


def test_stale_rate_used_when_source_fails(currency_service, rate_source, clock):
    currency_service.set_exchange_rate("usd", "inr", "80")
    clock.advance(2 * 60 * 60)
    rate_source.fail = True
    assert currency_service.get_exchange_rate("usd", "inr") == Decimal("80")


def test_default_rate_used_when_nothing_cached(clock):
    class DownSource:
        is_configured = False

        def fetch_rate(self, *_):
            raise ExternalServiceError("down")

        def fetch_converted_amount(self, *_):
            raise ExternalServiceError("down")

    svc = CurrencyService(source=DownSource(), clock=clock)
    svc._rates.clear()
    assert svc.get_exchange_rate("inr", "usd") == Decimal("0.012")
    assert svc.get_exchange_rate("usd", "inr") == Decimal("83.33")


def test_unsupported_currency_is_rejected(currency_service):
    with pytest.raises(ValidationError):
        currency_service.get_exchange_rate("inr", "eur")


def test_convert_prefers_direct_conversion(currency_service, rate_source):
    rate_source.rates[("inr", "usd")] = Decimal("0.0119")
    r = currency_service.convert_currency(Decimal("1000"), "inr", "usd")
    assert rate_source.convert_calls == 1
    assert r.converted_amount == Decimal("11.90")
    assert r.from_currency == "inr" and r.to_currency == "usd"


def test_convert_falls_back_to_rate_and_rounds(currency_service, rate_source):
    rate_source.fail = True
    r = currency_service.convert_currency(Decimal("129"), "inr", "usd")
    # 129 * 0.012 = 1.548
    assert r.converted_amount == Decimal("1.55")
    assert r.exchange_rate == Decimal("0.012")


def test_convert_multiple_and_summary(currency_service):
    results = currency_service.convert_multiple([(Decimal("10"), "usd", "inr"), (Decimal("5"), "usd", "usd")])
    assert [r.converted_amount for r in results] == [Decimal("833.30"), Decimal("5")]
    assert currency_service.get_conversion_summary(Decimal("10"), "usd", "inr") == (
        "10 usd = 833.30 inr (rate: 83.33)"
    )


def test_payment_method_currency_mapping():
    assert CurrencyService.get_currency_by_payment_method("razorpay") == "inr"
    assert CurrencyService.get_currency_by_payment_method(PaymentMethod.POLAR) == "usd"
    assert CurrencyService.get_payment_method_by_currency("inr") == "razorpay"
    assert CurrencyService.get_payment_method_by_currency(Currency.USD) == "polar"

    with pytest.raises(ValidationError):
        CurrencyService.get_currency_by_payment_method("paypal")
    with pytest.raises(ValidationError):
        CurrencyService.get_payment_method_by_currency("eur")


def test_is_api_configured(currency_service):
    assert currency_service.is_api_configured() is True
