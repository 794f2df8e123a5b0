"""QuantMesh web API client.

Implements every wizard collaborator (exchange, symbol, balance and
strategy-type lookups, AI recommendations, generate and apply) over the
trading bot's REST API.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

import requests

from ..config import BackendConfig

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class BackendError(Exception):
    """Raised when the backend rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _error_message(response: requests.Response) -> str:
    """Pull the server's own error message out of a failed response."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "error", "msg"):
            if data.get(key):
                return str(data[key])
    return response.text.strip() or f"HTTP {response.status_code}"


class BackendClient:
    """Client for the trading bot's configuration endpoints."""

    def __init__(
        self,
        config: Optional[BackendConfig] = None,
        ai_api_key: str = "",
        session: Optional[requests.Session] = None,
    ):
        self.config = config or BackendConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.ai_api_key = ai_api_key
        self.http = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Make API request with retry on rate limiting and server errors.

        Retries 429 and 5xx responses with exponential backoff
        (1s, 2s, 4s, capped at 10s).

        Raises:
            BackendError: On a non-retryable error or when retries run out.
        """
        url = f"{self.base_url}{endpoint}"
        max_retries = self.config.max_retries
        last_error: Optional[BackendError] = None

        for attempt in range(max_retries + 1):
            try:
                response = self.http.request(
                    method,
                    url,
                    params=params,
                    json=dict(body) if body is not None else None,
                    headers=self._headers(),
                    timeout=self.config.timeout_seconds,
                )
            except requests.exceptions.RequestException as e:
                last_error = BackendError(f"{method} {endpoint} failed: {e}")
            else:
                if response.status_code < 400:
                    try:
                        return response.json()
                    except ValueError:
                        raise BackendError(
                            f"{method} {endpoint} returned invalid JSON", response.status_code
                        )
                last_error = BackendError(_error_message(response), response.status_code)
                if response.status_code not in RETRYABLE_STATUS:
                    raise last_error

            if attempt < max_retries:
                wait_time = min(2 ** attempt, 10)
                # Only log on first retry to reduce noise
                if attempt == 0:
                    logger.debug(f"{method} {endpoint} failed ({last_error}), retrying...")
                time.sleep(wait_time)

        logger.warning(f"{method} {endpoint} failed after {max_retries} retries: {last_error}")
        raise last_error

    # Lookup Methods
    def get_exchanges(self) -> List[str]:
        """Get the exchanges configured on the bot."""
        data = self._request("GET", "/api/exchanges")
        items = data.get("exchanges", []) if isinstance(data, dict) else data
        exchanges = []
        for item in items or []:
            if isinstance(item, dict):
                name = item.get("name") or item.get("id")
            else:
                name = item
            if name:
                exchanges.append(str(name))
        return exchanges

    def get_symbols(self, exchange: str) -> List[str]:
        """Get tradable symbols for an exchange."""
        data = self._request("GET", "/api/symbols", params={"exchange": exchange})
        symbols = data.get("symbols", []) if isinstance(data, dict) else data
        return [str(s) for s in symbols or [] if s]

    def get_balance(self, exchange: str) -> float:
        """Get available USDT balance on an exchange."""
        data = self._request("GET", "/api/capital/balance", params={"exchange": exchange})
        return float(data.get("available", data.get("availableBalance", 0)))

    def get_strategy_types(self) -> List[str]:
        """Get the strategy types this deployment offers."""
        data = self._request("GET", "/api/strategies/types")
        items = data.get("types", []) if isinstance(data, dict) else data
        types = []
        for item in items or []:
            name = item.get("type") if isinstance(item, dict) else item
            if name:
                types.append(str(name))
        return types

    # AI Methods
    def generate_recommendation(
        self,
        exchange: str,
        symbols: List[str],
        risk_profile: str,
        capital_context: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Ask the AI service how to weight symbols and strategies.

        The backend answers with an ``allocation`` list
        (``symbol`` / ``max_percentage``); it is folded into
        ``symbol_weights`` when the response has none.
        """
        body: Dict[str, Any] = {
            "exchange": exchange,
            "symbols": list(symbols),
            "risk_profile": risk_profile,
            "capital_mode": capital_context.get("capital_mode", "total"),
            "strategy_types": capital_context.get("strategy_types", []),
        }
        if body["capital_mode"] == "per_symbol":
            body["symbol_capitals"] = [
                {"symbol": s, "capital": c}
                for s, c in capital_context.get("symbol_capitals", {}).items()
                if c > 0
            ]
        else:
            body["total_capital"] = capital_context.get("total_capital", 0.0)
        api_key = capital_context.get("api_key") or self.ai_api_key
        if api_key:
            body["gemini_api_key"] = api_key

        data = self._request("POST", "/api/ai/generate-config", body=body)
        if not isinstance(data, dict):
            return {}
        if "symbol_weights" not in data and "symbolWeights" not in data:
            weights = {}
            for alloc in data.get("allocation") or []:
                if isinstance(alloc, dict) and alloc.get("symbol"):
                    weights[alloc["symbol"]] = alloc.get("max_percentage", 0)
            data["symbol_weights"] = weights
        return data

    def generate_config(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Generate the full bot configuration from a wizard payload."""
        return self._request("POST", "/api/ai/generate-config", body=payload)

    def apply_config(self, preview: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply a generated configuration."""
        data = self._request("POST", "/api/ai/apply-config", body=preview)
        if isinstance(data, dict) and data.get("success") is False:
            raise BackendError(data.get("message") or "apply rejected")
        return data

    # Wizard collaborator protocol
    async def list_configured_exchanges(self) -> List[str]:
        return await asyncio.to_thread(self.get_exchanges)

    async def list_available_symbols(self, exchange: str) -> List[str]:
        return await asyncio.to_thread(self.get_symbols, exchange)

    async def get_available_balance(self, exchange: str) -> float:
        return await asyncio.to_thread(self.get_balance, exchange)

    async def list_strategy_types(self) -> List[str]:
        return await asyncio.to_thread(self.get_strategy_types)

    async def recommend(
        self,
        exchange: str,
        symbols: List[str],
        risk_profile: str,
        capital_context: Mapping[str, Any],
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(
            self.generate_recommendation, exchange, symbols, risk_profile, capital_context
        )

    async def submit(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self.generate_config, payload)

    async def apply(self, preview: Mapping[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self.apply_config, preview)
