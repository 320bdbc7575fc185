"""
ingestion/dex/jupiter.py

Jupiter Lite API client (swap quotes and token search).

Used only to pre-fill order amounts; order correctness never depends on it,
so failures degrade to None / empty results.
"""
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import requests

from .models import ErrorResponse, QuoteResponse, RouteStep, Token

logger = logging.getLogger(__name__)


# Jupiter API Configuration
JUPITER_QUOTE_URL = "https://lite-api.jup.ag/swap/v1/quote"
JUPITER_TOKENS_URL = "https://lite-api.jup.ag/tokens/v2/search"


class JupiterClient:
    """
    Client for the Jupiter Lite quote and token search APIs.

    Features:
    - GET /swap/v1/quote for swap quotes
    - GET /tokens/v2/search for token metadata
    - Graceful error handling (no retries)
    """

    def __init__(
        self,
        quote_url: str = JUPITER_QUOTE_URL,
        tokens_url: str = JUPITER_TOKENS_URL,
        timeout_ms: int = 30_000,
        http_callable: Optional[Callable[[str, Dict[str, str]], Any]] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize JupiterClient.

        Args:
            quote_url: Jupiter quote endpoint
            tokens_url: Jupiter token search endpoint
            timeout_ms: Request timeout in milliseconds
            http_callable: Optional HTTP callable for testing
            session: Optional shared requests session
        """
        self._quote_url = quote_url
        self._tokens_url = tokens_url
        self._timeout_ms = timeout_ms
        self._http_callable = http_callable
        self._session = session

    def _make_request(self, url: str, params: Dict[str, str]) -> Any:
        """
        Make a GET request.

        Args:
            url: Endpoint
            params: Query parameters

        Returns:
            Response JSON
        """
        if self._http_callable is not None:
            return self._http_callable(url, params)

        if self._session is None:
            self._session = requests.Session()
        resp = self._session.get(url, params=params, timeout=self._timeout_ms / 1000.0)
        resp.raise_for_status()
        return resp.json()

    def _parse_error(self, data: Any) -> Optional[ErrorResponse]:
        if isinstance(data, dict) and "error" in data:
            return ErrorResponse.from_dict(data)
        return None

    def _parse_route_plan(self, route_data: List[Dict[str, Any]]) -> List[RouteStep]:
        steps = []
        for step_data in route_data:
            # v1 nests the hop under swapInfo
            info = step_data.get("swapInfo", step_data)
            steps.append(RouteStep(
                amm_key=info.get("ammKey", ""),
                label=info.get("label"),
                input_mint=info.get("inputMint", ""),
                output_mint=info.get("outputMint", ""),
                in_amount=int(info.get("inAmount", 0)),
                out_amount=int(info.get("outAmount", 0)),
            ))
        return steps

    def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount_atomic: int,
        slippage_bps: int = 50,
    ) -> Optional[QuoteResponse]:
        """
        Get a quote for a swap.

        Args:
            input_mint: Input token mint address
            output_mint: Output token mint address
            amount_atomic: Amount in atomic units (integer)
            slippage_bps: Slippage tolerance in basis points

        Returns:
            QuoteResponse or None if no route found or the API failed
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount_atomic),
            "slippageBps": str(slippage_bps),
        }

        try:
            data = self._make_request(self._quote_url, params)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"[jupiter] Failed to get quote: {e}")
            return None

        error = self._parse_error(data)
        if error is not None:
            if error.is_no_route_error():
                logger.info(f"[jupiter] No route {input_mint[:8]}... -> {output_mint[:8]}...")
            else:
                logger.warning(f"[jupiter] API error: {error.error}")
            return None

        quote = QuoteResponse(
            in_amount=int(data.get("inAmount", 0)),
            out_amount=int(data.get("outAmount", 0)),
            price_impact_pct=float(data.get("priceImpactPct", 0.0) or 0.0),
            route_plan=self._parse_route_plan(data.get("routePlan", [])),
            input_mint=input_mint,
            output_mint=output_mint,
            other_amount_threshold=int(data.get("otherAmountThreshold", 0)),
            slippage_bps=slippage_bps,
        )

        logger.debug(f"[jupiter] Quote: {quote.in_amount} -> {quote.out_amount} via {', '.join(quote.venues) or 'direct'}")
        return quote

    def get_current_rate(
        self,
        input_token: Token,
        output_token: Token,
        amount_atomic: int,
        slippage_bps: int = 50,
    ) -> Optional[Dict[str, Any]]:
        """
        Estimate the output amount and implied rate of a swap.

        Args:
            input_token: Input token (decimals needed for the rate)
            output_token: Output token
            amount_atomic: Input amount in atomic units
            slippage_bps: Slippage tolerance in basis points

        Returns:
            {"out_amount": int, "rate": Decimal} or None if no quote
        """
        quote = self.get_quote(input_token.id, output_token.id, amount_atomic, slippage_bps=slippage_bps)
        if quote is None:
            return None
        rate = quote.implied_rate(input_token.decimals, output_token.decimals)
        return {
            "out_amount": quote.out_amount,
            "rate": rate if rate is not None else Decimal(0),
        }

    def search_tokens(self, query: str) -> List[Token]:
        """
        Search tokens by symbol, name or mint.

        Returns:
            Matching tokens, empty on failure
        """
        try:
            data = self._make_request(self._tokens_url, {"query": query})
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"[jupiter] Token search failed: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(f"[jupiter] Unexpected token search payload: {type(data).__name__}")
            return []

        tokens = []
        for item in data:
            try:
                tokens.append(Token.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"[jupiter] Skipping malformed token entry: {e}")
        return tokens
