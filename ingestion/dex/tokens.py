"""
ingestion/dex/tokens.py

Token registry loaded from config/tokens.yaml.

Maps a mint to its decimals and owning token program. Mints missing from
the registry can be resolved on demand through a fallback (the mint
account's owner on chain).
"""
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Union

import yaml
from solders.pubkey import Pubkey

from .models import Token

logger = logging.getLogger(__name__)


class TokenRegistry:
    """Known tokens keyed by mint address."""

    def __init__(
        self,
        tokens: Iterable[Token] = (),
        owner_lookup: Optional[Callable[[Pubkey], Optional[Pubkey]]] = None,
    ):
        """
        Args:
            tokens: Initial tokens
            owner_lookup: Fallback resolving a mint's owning program
        """
        self._tokens: Dict[str, Token] = {t.id: t for t in tokens}
        self._owner_lookup = owner_lookup

    @classmethod
    def from_yaml(
        cls,
        path: Union[str, Path],
        owner_lookup: Optional[Callable[[Pubkey], Optional[Pubkey]]] = None,
    ) -> "TokenRegistry":
        """Load tokens from a YAML file with a top-level `tokens` list."""
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        tokens = [Token.from_dict(item) for item in data.get("tokens", [])]
        logger.info(f"[tokens] Loaded {len(tokens)} tokens from {path}")
        return cls(tokens, owner_lookup=owner_lookup)

    def __contains__(self, mint: object) -> bool:
        return str(mint) in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def get(self, mint: Union[str, Pubkey]) -> Optional[Token]:
        return self._tokens.get(str(mint))

    def add(self, token: Token) -> None:
        self._tokens[token.id] = token

    def token_program(self, mint: Pubkey) -> Optional[Pubkey]:
        """
        Resolve the token program owning `mint`.

        Returns:
            Token program, or None if the mint is unknown everywhere
        """
        token = self.get(mint)
        if token is not None and token.token_program:
            return Pubkey.from_string(token.token_program)

        if self._owner_lookup is None:
            return None

        owner = self._owner_lookup(mint)
        if owner is not None:
            logger.debug(f"[tokens] Resolved token program of {mint} on chain: {owner}")
        return owner
