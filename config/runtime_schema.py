"""config/runtime_schema.py

Defines the configuration schema of the order engine.
Implements manual validation to avoid Pydantic dependency.
"""

from dataclasses import dataclass
from typing import Any, Optional


DEFAULT_RPC_URL = "https://devnet.helius-rpc.com/"
DEFAULT_HELIUS_API_URL = "https://api-devnet.helius.xyz/v0"
DEFAULT_JUPITER_QUOTE_URL = "https://lite-api.jup.ag/swap/v1/quote"
DEFAULT_JUPITER_TOKENS_URL = "https://lite-api.jup.ag/tokens/v2/search"


@dataclass(frozen=True)
class EngineConfig:
    """
    Endpoints and limits used to build order transactions.

    `photon_url` defaults to `rpc_url` (Helius serves both the compression
    and the plain Solana RPC on one endpoint).
    """
    # Endpoints
    rpc_url: str = DEFAULT_RPC_URL
    photon_url: str = ""
    helius_api_url: str = DEFAULT_HELIUS_API_URL
    helius_api_key: str = ""
    jupiter_quote_url: str = DEFAULT_JUPITER_QUOTE_URL
    jupiter_tokens_url: str = DEFAULT_JUPITER_TOKENS_URL
    timeout_ms: int = 30_000

    # Compute budget
    init_compute_units: int = 400_000
    mutate_compute_units: int = 300_000

    # History / quotes
    history_limit: int = 10
    default_slippage_bps: int = 50

    tokens_path: str = "config/tokens.yaml"

    def __post_init__(self):
        """Validate constraints manually since we don't have Pydantic."""
        for name in ("rpc_url", "helius_api_url", "jupiter_quote_url", "jupiter_tokens_url"):
            self._validate_url(name, getattr(self, name))
        if self.photon_url:
            self._validate_url("photon_url", self.photon_url)

        self._validate_range("timeout_ms", self.timeout_ms, 100, 300_000)
        # Solana caps a transaction at 1.4M compute units
        self._validate_range("init_compute_units", self.init_compute_units, 1, 1_400_000)
        self._validate_range("mutate_compute_units", self.mutate_compute_units, 1, 1_400_000)
        self._validate_range("history_limit", self.history_limit, 1, 100)
        self._validate_range("default_slippage_bps", self.default_slippage_bps, 0, 10_000)

    @property
    def rpc_endpoint(self) -> str:
        """RPC URL with the Helius API key attached when one is configured."""
        return self._with_api_key(self.rpc_url)

    @property
    def photon_endpoint(self) -> str:
        return self._with_api_key(self.photon_url or self.rpc_url)

    def _with_api_key(self, url: str) -> str:
        if not self.helius_api_key or "api-key=" in url:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}api-key={self.helius_api_key}"

    def _validate_url(self, name: str, value: Any) -> None:
        if not isinstance(value, str) or not value.startswith(("http://", "https://")):
            raise ValueError(f"{name} must be an http(s) URL, got {value!r}")

    def _validate_range(self, name: str, value: Any, min_val: float, max_val: Optional[float] = None) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")

        if value < min_val:
            raise ValueError(f"{name} {value} is below minimum {min_val}")
        if max_val is not None and value > max_val:
            raise ValueError(f"{name} {value} is above maximum {max_val}")
