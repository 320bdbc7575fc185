"""
ingestion/compression/client.py

Photon compression indexer / prover client (JSON-RPC).

Provides compressed account lookups, validity proofs and the few plain
Solana RPC calls needed to assemble a transaction. Proofs are never
computed locally. Requests are single-shot: failures surface as
UpstreamError and are not retried.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import base58
import requests
from solders.hash import Hash, ParseHashError
from solders.pubkey import Pubkey

from integration.errors import ProofUnavailableError, UpstreamError

from .models import AddressWithTree, CompressedAccount, HashWithTree, ValidityProof

logger = logging.getLogger(__name__)


DEFAULT_PAGE_SIZE = 1000
DEFAULT_TIMEOUT_MS = 30_000

# http_callable(method, params) -> full JSON-RPC response dict
HttpCallable = Callable[[str, Any], Dict[str, Any]]

T = TypeVar("T")


def _parse_result(method: str, parser: Callable[[Any], T], value: Any) -> T:
    """Build a model from a result, mapping malformed payloads to UpstreamError."""
    try:
        return parser(value)
    except (AttributeError, KeyError, TypeError, ValueError, ParseHashError) as e:
        logger.error(f"[photon] Malformed {method} response: {e}")
        raise UpstreamError(f"Malformed {method} response: {e}")


class PhotonClient:
    """
    Client for the Photon compression RPC and the Solana RPC behind it.

    Features:
    - getCompressedAccount / getCompressedAccountsByOwner (with cursor pagination)
    - getValidityProof for inclusion (hashes) and non-inclusion (new addresses)
    - getLatestBlockhash / getAccountInfo
    """

    def __init__(
        self,
        photon_url: str,
        rpc_url: Optional[str] = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        page_size: int = DEFAULT_PAGE_SIZE,
        http_callable: Optional[HttpCallable] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize PhotonClient.

        Args:
            photon_url: Compression RPC endpoint
            rpc_url: Solana RPC endpoint (defaults to photon_url; Helius serves both)
            timeout_ms: Request timeout in milliseconds
            page_size: Page size for owner queries
            http_callable: Optional transport for testing
            session: Optional shared requests session
        """
        self._photon_url = photon_url
        self._rpc_url = rpc_url or photon_url
        self._timeout_ms = timeout_ms
        self._page_size = page_size
        self._http_callable = http_callable
        self._session = session

    def _post(self, url: str, method: str, params: Any) -> Dict[str, Any]:
        if self._http_callable is not None:
            return self._http_callable(method, params)

        if self._session is None:
            self._session = requests.Session()

        payload = {
            "jsonrpc": "2.0",
            "id": f"photon-{int(time.time() * 1000)}",
            "method": method,
            "params": params,
        }
        try:
            resp = self._session.post(url, json=payload, timeout=self._timeout_ms / 1000.0)
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.HTTPError as e:
            raise UpstreamError(f"HTTP error from {method}: {e}")
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Request failed for {method}: {e}")
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from {method}: {e}")

    def _make_request(self, method: str, params: Any, url: Optional[str] = None) -> Any:
        """
        Make a JSON-RPC request.

        Args:
            method: RPC method name
            params: Request parameters
            url: Endpoint override (defaults to the Photon endpoint)

        Returns:
            The `result` member of the response

        Raises:
            UpstreamError: On transport failure or a JSON-RPC error object
        """
        response = self._post(url or self._photon_url, method, params)

        if not isinstance(response, dict):
            raise UpstreamError(f"Malformed response from {method}: {type(response).__name__}")

        if "error" in response:
            error = response.get("error") or {}
            error_msg = error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
            error_code = error.get("code", -1) if isinstance(error, dict) else -1
            logger.error(f"[photon] {method} failed: RPC error {error_code}: {error_msg}")
            raise UpstreamError(f"RPC error {error_code} from {method}: {error_msg}")

        return response.get("result")

    @staticmethod
    def _value(result: Any) -> Any:
        """Unwrap the `{context, value}` envelope used by most methods."""
        if isinstance(result, dict) and "value" in result:
            return result["value"]
        return result

    def get_compressed_account(self, address: Pubkey) -> Optional[CompressedAccount]:
        """
        Fetch the compressed account living at `address`.

        Args:
            address: Compressed account address

        Returns:
            CompressedAccount, or None if no account exists at the address
        """
        value = self._value(self._make_request("getCompressedAccount", {"address": str(address)}))
        if not value:
            logger.debug(f"[photon] No compressed account at {address}")
            return None
        return _parse_result("getCompressedAccount", CompressedAccount.from_dict, value)

    def get_validity_proof(
        self,
        hashes: Sequence[HashWithTree] = (),
        new_addresses: Sequence[AddressWithTree] = (),
    ) -> ValidityProof:
        """
        Request a validity proof bound to the current Merkle roots.

        Args:
            hashes: Existing account hashes to prove inclusion for
            new_addresses: New addresses to prove non-inclusion for

        Returns:
            ValidityProof with one root index per requested item

        Raises:
            ProofUnavailableError: If the service returns no proof
        """
        params = {
            "hashes": [h.to_param() for h in hashes],
            "newAddressesWithTrees": [a.to_param() for a in new_addresses],
        }
        value = self._value(self._make_request("getValidityProof", params))

        if not isinstance(value, dict) or not value.get("compressedProof"):
            logger.warning(
                f"[photon] No validity proof for {len(hashes)} hashes / {len(new_addresses)} addresses"
            )
            raise ProofUnavailableError("no validity proof")

        proof = _parse_result("getValidityProof", ValidityProof.from_dict, value)
        if not proof.root_indices:
            raise ProofUnavailableError("no validity proof: missing root indices")
        return proof

    def get_compressed_accounts_by_owner(
        self,
        owner: Pubkey,
        memcmp_offset: Optional[int] = None,
        memcmp_bytes: Optional[bytes] = None,
    ) -> List[CompressedAccount]:
        """
        Get all compressed accounts owned by a program, with automatic pagination.

        Args:
            owner: Owning program
            memcmp_offset: Optional data offset to filter on
            memcmp_bytes: Bytes that must appear at memcmp_offset

        Returns:
            List of CompressedAccount objects
        """
        params: Dict[str, Any] = {"owner": str(owner), "limit": self._page_size}
        if memcmp_bytes is not None:
            params["filters"] = [{
                "memcmp": {
                    "offset": memcmp_offset or 0,
                    "bytes": base58.b58encode(memcmp_bytes).decode("utf-8"),
                },
            }]

        accounts: List[CompressedAccount] = []
        cursor = None
        while True:
            if cursor is not None:
                params["cursor"] = cursor
            value = self._value(self._make_request("getCompressedAccountsByOwner", params)) or {}
            if not isinstance(value, dict):
                raise UpstreamError(f"Malformed getCompressedAccountsByOwner response: {type(value).__name__}")
            items = value.get("items") or []
            accounts.extend(
                _parse_result("getCompressedAccountsByOwner", CompressedAccount.from_dict, item) for item in items
            )

            cursor = value.get("cursor")
            if not cursor or not items:
                break

        logger.info(f"[photon] Retrieved {len(accounts)} compressed accounts for {owner}")
        return accounts

    def get_latest_blockhash(self) -> Hash:
        """Get a fresh recent blockhash."""
        value = self._value(
            self._make_request("getLatestBlockhash", [{"commitment": "confirmed"}], url=self._rpc_url)
        )
        if not isinstance(value, dict) or "blockhash" not in value:
            raise UpstreamError("getLatestBlockhash returned no blockhash")
        return _parse_result("getLatestBlockhash", Hash.from_string, value["blockhash"])

    def get_account_owner(self, pubkey: Pubkey) -> Optional[Pubkey]:
        """
        Get the owning program of a regular account.

        Used to resolve the token program of a mint.

        Returns:
            Owner program, or None if the account does not exist
        """
        value = self._value(
            self._make_request(
                "getAccountInfo",
                [str(pubkey), {"encoding": "base64", "dataSlice": {"offset": 0, "length": 0}}],
                url=self._rpc_url,
            )
        )
        if not value:
            return None
        return _parse_result("getAccountInfo", lambda v: Pubkey.from_string(v["owner"]), value)

    def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """
        Get a confirmed transaction with its log messages.

        Returns:
            Raw transaction dict, or None if not found
        """
        return self._make_request(
            "getTransaction",
            [signature, {"maxSupportedTransactionVersion": 0, "commitment": "confirmed", "encoding": "json"}],
            url=self._rpc_url,
        )
