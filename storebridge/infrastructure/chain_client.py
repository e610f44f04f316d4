"""Settlement chain RPC client.

Reads account balances of the settlement asset from the chain's REST
fullnode API.
"""

import re
from dataclasses import dataclass

import httpx
import structlog

from storebridge.domain.exceptions import InvalidAddressError

logger = structlog.get_logger()

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")


def validate_address(address: str) -> str:
    """Check an account address is ``0x`` followed by 64 hex characters.

    Raises:
        InvalidAddressError: If the format does not match.
    """
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address):
        raise InvalidAddressError(str(address))
    return address


class ChainClientError(Exception):
    """Error from a chain RPC call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class AccountBalance:
    """Balance of the settlement asset held by an account."""

    address: str
    balance: int
    exists: bool


class ChainClient:
    """HTTP client for the settlement chain's fullnode REST API."""

    def __init__(self, rpc_url: str, asset: str, timeout: float = 10.0) -> None:
        self.rpc_url = rpc_url.rstrip("/")
        self.asset = asset
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.rpc_url, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_balance(self, address: str) -> AccountBalance:
        """Get the settlement asset balance of an account.

        An account without a coin store (404) has a zero balance.

        Args:
            address: Account address.

        Returns:
            The account balance in smallest units.

        Raises:
            InvalidAddressError: If the address is malformed.
            ChainClientError: On RPC failure.
        """
        validate_address(address)
        path = f"/accounts/{address}/resource/0x1::coin::CoinStore<{self.asset}>"
        try:
            client = await self._get_client()
            response = await client.get(path)
        except httpx.RequestError as e:
            logger.error("Chain RPC request failed", address=address, error=str(e))
            raise ChainClientError(f"Request failed: {e}") from e

        if response.status_code == 404:
            return AccountBalance(address=address, balance=0, exists=False)
        if response.status_code != 200:
            raise ChainClientError(f"RPC error: {response.status_code}", response.status_code)

        data = response.json()
        value = ((data.get("data") or {}).get("coin") or {}).get("value") or "0"
        return AccountBalance(address=address, balance=int(value), exists=True)
