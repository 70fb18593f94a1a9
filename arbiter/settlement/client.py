"""HTTP client for the settlement gateway."""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from arbiter.config import get_settings
from arbiter.contracts.models import Choice
from arbiter.settlement.base import SettlementService
from arbiter.settlement.exceptions import (
    SettlementError,
    SettlementNetworkError,
    SettlementRejectedError,
)

logger = logging.getLogger(__name__)


class HttpSettlementClient(SettlementService):
    """Settlement service backed by a ledger gateway HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize settlement client.

        Args:
            base_url: Gateway base URL. If None, uses config value.
            api_key: Gateway API key. If None, uses config value.
            timeout_seconds: Request timeout. If None, uses config value.
            session: Preconfigured session. If None, one with retries is created.
        """
        settings = get_settings()
        self.base_url = (base_url or settings.settlement_base_url).rstrip("/")
        self.api_key = api_key or settings.settlement_api_key
        self.timeout_seconds = timeout_seconds or settings.settlement_timeout_seconds
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session with retry logic."""
        session = requests.Session()

        # Declarations carry an idempotency key, so POST is safe to retry
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS", "POST"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    async def declare_winner(self, contract_id: str, choice: Choice) -> str:
        if choice is Choice.NONE:
            raise SettlementRejectedError(f"Cannot declare an empty choice for {contract_id}")

        logger.info(f"Declaring winner for {contract_id}: choice {choice.name}")
        data = await asyncio.to_thread(
            self._request,
            "POST",
            f"/contracts/{contract_id}/winner",
            {"choice": int(choice)},
            {"Idempotency-Key": f"declare-winner-{contract_id}"},
        )

        transaction_ref = data.get("transactionHash") or data.get("transactionRef") or data.get("txHash")
        if not transaction_ref:
            raise SettlementError(
                f"Settlement gateway returned no transaction reference for {contract_id}",
                response_data=data,
            )

        logger.info(f"Winner declared for {contract_id}: {transaction_ref}")
        return transaction_ref

    def _request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Make a request to the settlement gateway.

        Raises:
            SettlementRejectedError: If the gateway rejects the request (4xx)
            SettlementNetworkError: If the gateway cannot be reached
            SettlementError: For other failed responses
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if extra_headers:
            headers.update(extra_headers)

        url = f"{self.base_url}{endpoint}"

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                json=json_data,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            return response.json() if response.content else {}

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            try:
                error_data = e.response.json() if e.response is not None else {}
            except ValueError:
                error_data = {}

            if status_code is not None and 400 <= status_code < 500:
                raise SettlementRejectedError(
                    f"Settlement rejected: {error_data.get('error') or str(e)}",
                    status_code=status_code,
                    response_data=error_data,
                )

            raise SettlementError(
                f"Settlement request failed: {str(e)}",
                status_code=status_code,
                response_data=error_data,
            )

        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise SettlementNetworkError(f"Settlement gateway unreachable: {str(e)}")

        except requests.exceptions.RequestException as e:
            raise SettlementNetworkError(f"Settlement request failed: {str(e)}")
