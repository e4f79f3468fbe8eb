#Purpose: The payment gateway "adapter/client".
#Sole responsibility: tell the engine whether a card charge for a ride has
#already been captured. Charging itself happens elsewhere.
#Encapsulates gateway-specific details:
#URL construction (/charges/<ride_id>)
#timeouts and error handling
#parsing the response JSON into a yes/no
#It should not contain settlement rules.

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

import requests
from dotenv import load_dotenv

from rides.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

# Read gateway settings from environment
# Example in .env:
# PAYMENT_GATEWAY_URL=https://payments.internal
# PAYMENT_GATEWAY_TIMEOUT=5
load_dotenv()


class PaymentGateway(ABC):
    @abstractmethod
    async def is_charge_paid(self, ride_id: str) -> bool:
        """True when a paid card charge is already on record for the ride."""


class HttpPaymentGateway(PaymentGateway):
    """
    Payment gateway over HTTP.

    The blocking `requests` call runs in a worker thread so the event loop
    keeps serving other rides while the gateway answers.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or os.getenv("PAYMENT_GATEWAY_URL") or "").rstrip("/")
        self.timeout = timeout if timeout is not None else float(os.getenv("PAYMENT_GATEWAY_TIMEOUT", "5"))
        self.session = session or requests.Session()

        if not self.base_url:
            raise ValueError("Payment gateway URL not set. Please set PAYMENT_GATEWAY_URL in the .env file.")

    def fetch_charge(self, ride_id: str) -> Optional[Dict[str, Any]]:
        """
        GET /charges/<ride_id>

        Returns the charge JSON, or None when the gateway has no charge for the ride.
        """
        url = f"{self.base_url}/charges/{ride_id}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as error:
            raise ExternalServiceError(f"Payment gateway error: {error}") from error

    async def is_charge_paid(self, ride_id: str) -> bool:
        charge = await asyncio.to_thread(self.fetch_charge, ride_id)
        if charge is None:
            logger.warning("No card charge on record for ride %s", ride_id)
            return False
        return charge.get("status") == "paid"


class InMemoryPaymentGateway(PaymentGateway):
    def __init__(self, paid_rides: Optional[Set[str]] = None, available: bool = True):
        self.paid_rides: Set[str] = set(paid_rides or ())
        self.available = available

    def mark_paid(self, ride_id: str) -> None:
        self.paid_rides.add(ride_id)

    async def is_charge_paid(self, ride_id: str) -> bool:
        await asyncio.sleep(0)
        if not self.available:
            raise ExternalServiceError("Payment gateway unavailable")
        return ride_id in self.paid_rides
