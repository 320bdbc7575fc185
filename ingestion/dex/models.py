"""
ingestion/dex/models.py

Jupiter Quote and Token API response models.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RouteStep:
    """One hop of a quoted route (amounts in atomic units)."""
    amm_key: str
    label: Optional[str]
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int


@dataclass
class QuoteResponse:
    """
    Normalized /swap/v1/quote response.

    Only used to suggest a taking amount for a new order, never to route.
    """
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    price_impact_pct: float = 0.0
    other_amount_threshold: int = 0
    slippage_bps: int = 0
    route_plan: List[RouteStep] = field(default_factory=list)

    @property
    def venues(self) -> List[str]:
        """Distinct AMM labels along the route, in route order."""
        labels: List[str] = []
        for step in self.route_plan:
            if step.label and step.label not in labels:
                labels.append(step.label)
        return labels

    def implied_rate(self, input_decimals: int, output_decimals: int) -> Optional[Decimal]:
        """
        Output tokens per input token, decimal-adjusted.

        Returns:
            Rate, or None if the quote has no input amount
        """
        if self.in_amount <= 0:
            return None
        in_ui = Decimal(self.in_amount) / (Decimal(10) ** input_decimals)
        out_ui = Decimal(self.out_amount) / (Decimal(10) ** output_decimals)
        return out_ui / in_ui


@dataclass
class Token:
    """Token metadata (mint, decimals, and the token program owning the mint)."""
    id: str
    symbol: str
    decimals: int
    token_program: str
    name: str = ""
    icon: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            id=data["id"],
            symbol=data.get("symbol", ""),
            decimals=int(data.get("decimals", 0)),
            token_program=data.get("tokenProgram") or data.get("token_program", ""),
            name=data.get("name", ""),
            icon=data.get("icon"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "symbol": self.symbol,
            "icon": self.icon,
            "decimals": self.decimals,
            "tokenProgram": self.token_program,
        }


@dataclass
class ErrorResponse:
    """Error response from Jupiter API."""
    error: str
    error_code: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorResponse":
        return cls(
            error=data.get("error", "Unknown error"),
            error_code=data.get("errorCode"),
        )

    def is_no_route_error(self) -> bool:
        """Check if this is a 'no route found' error."""
        no_route_keywords = ["no route", "no available route", "cannot fulfill"]
        return any(kw.lower() in self.error.lower() for kw in no_route_keywords)
