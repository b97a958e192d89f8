# storefront/services/exchange_rate_client.py
from decimal import Decimal

import requests
from requests import RequestException

from storefront.domain.errors import ExternalServiceError
from storefront.utils.settings import EXCHANGE_API_KEY, EXCHANGE_API_URL, EXCHANGE_API_TIMEOUT
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ExchangeRateClient:
    """
    Live rate source (exchangerate-api.com v6 "pair" endpoint).

    Single attempt per call, no retry: CurrencyService owns the fallback chain.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = EXCHANGE_API_KEY if api_key is None else api_key
        self.base_url = (base_url or EXCHANGE_API_URL).rstrip("/")
        self.timeout = timeout or EXCHANGE_API_TIMEOUT

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        data = self._get_pair(from_currency, to_currency)
        return self._positive(data, "conversion_rate", f"{from_currency}->{to_currency}")

    def fetch_converted_amount(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        data = self._get_pair(from_currency, to_currency, amount)
        return self._positive(data, "conversion_result", f"{amount} {from_currency}->{to_currency}")

    def _get_pair(self, from_currency: str, to_currency: str, amount: Decimal | None = None) -> dict:
        if not self.is_configured:
            raise ExternalServiceError("Exchange API key is not configured", code="EXCHANGE_RATE_FAILED")

        url = f"{self.base_url}/{self.api_key}/pair/{from_currency.upper()}/{to_currency.upper()}"
        if amount is not None:
            url = f"{url}/{amount}"

        logger.info(f"ExchangeRateClient GET pair {from_currency.upper()}/{to_currency.upper()}")
        try:
            resp = requests.get(url, timeout=self.timeout)
            data = resp.json()
        except (RequestException, ValueError) as e:
            raise ExternalServiceError(
                f"Failed to fetch exchange rate {from_currency}->{to_currency}: {e}",
                code="EXCHANGE_RATE_FAILED",
            ) from e

        if not resp.ok or not isinstance(data, dict) or data.get("result") != "success":
            reason = data.get("error-type") if isinstance(data, dict) else None
            raise ExternalServiceError(
                f"Exchange API returned failure: {reason or resp.status_code}",
                code="EXCHANGE_RATE_FAILED",
            )
        return data

    @staticmethod
    def _positive(data: dict, field: str, what: str) -> Decimal:
        value = data.get(field)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ExternalServiceError(
                f"Invalid {field} from exchange API for {what}",
                code="EXCHANGE_RATE_FAILED",
            )
        return Decimal(str(value))
