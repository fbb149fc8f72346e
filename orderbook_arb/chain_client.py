"""
EVM JSON-RPC client for gas estimation, L1 data fee, block number and gas price reads.
"""
import itertools
import logging
from typing import Any, List, Optional

import httpx
from eth_abi import encode

from .settlement import RawTx, function_selector

logger = logging.getLogger(__name__)

# Error codes for failures that happen before a JSON-RPC response is received
TIMEOUT = "TIMEOUT"
NETWORK_ERROR = "NETWORK_ERROR"
RATE_LIMITED = "RATE_LIMITED"
INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"

# OP-stack predeploy pricing the L1 data fee of L2 transactions
GAS_PRICE_ORACLE = "0x420000000000000000000000000000000000000F"
GET_L1_FEE_SIGNATURE = "getL1Fee(bytes)"


class SimulationError(Exception):
    """
    Error returned by a simulation RPC call.

    Wraps JSON-RPC error objects as well as transport failures so callers
    only ever have to handle one exception type.
    """

    def __init__(self, code: Any, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    @property
    def is_insufficient_funds(self) -> bool:
        """True if the sender could not pay for the gas of the simulated transaction."""
        if self.code == INSUFFICIENT_FUNDS:
            return True
        text = f"{self.message} {self.data or ''}".lower()
        return (
            "insufficient funds" in text
            or "gas required exceeds allowance" in text
        )

    def __str__(self) -> str:
        return f"{self.code}: {self.message}" if self.code is not None else self.message


class ChainClient:
    """Client for EVM JSON-RPC operations with failover support."""

    def __init__(
        self,
        rpc_url: str,
        sender: Optional[str] = None,
        fallback_rpc_url: Optional[str] = None,
        timeout: float = 10.0,
        gas_price_multiplier: int = 100
    ):
        """
        Initialize chain client.

        Args:
            rpc_url: Primary JSON-RPC endpoint
            sender: Address used as "from" for simulations
            fallback_rpc_url: Optional endpoint used after a transport failure on the primary
            timeout: Per request timeout in seconds
            gas_price_multiplier: Percentage applied to the node's gas price (100 = unchanged)
        """
        self.rpc_url_primary = rpc_url
        self.rpc_url_fallback = fallback_rpc_url
        self._active_rpc_url = rpc_url
        self._failover_used = False  # Track if failover has been used (for logging)
        self.sender = sender
        self.timeout = timeout
        self.gas_price_multiplier = gas_price_multiplier
        self.client = httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def _switch_to_fallback(self, reason: str) -> bool:
        """
        Switch to fallback RPC if available.

        Args:
            reason: Reason for failover (for logging)

        Returns:
            True if switched to fallback, False if no fallback available
        """
        if self.rpc_url_fallback and self._active_rpc_url == self.rpc_url_primary:
            if not self._failover_used:
                # Log domains only, urls may embed api keys
                primary_domain = self.rpc_url_primary.split('//')[-1].split('/')[0]
                fallback_domain = self.rpc_url_fallback.split('//')[-1].split('/')[0]
                logger.warning(
                    f"RPC failover: PRIMARY ({primary_domain}) -> FALLBACK ({fallback_domain}), reason: {reason}"
                )
                self._failover_used = True

            await self.client.aclose()
            self._active_rpc_url = self.rpc_url_fallback
            self.client = httpx.AsyncClient(timeout=self.timeout)
            return True
        return False

    def _is_failover_error(self, error: Exception) -> bool:
        """
        Check if error should trigger failover.

        JSON-RPC error objects (reverts, insufficient funds) are answers from
        a healthy node and never trigger failover.
        """
        return isinstance(error, SimulationError) and error.code in (TIMEOUT, NETWORK_ERROR, RATE_LIMITED)

    async def _with_failover(self, coro_func, *args, **kwargs):
        """
        Execute coroutine with failover support.

        Raises:
            SimulationError: If the call fails and no fallback applies, or both endpoints fail
        """
        try:
            return await coro_func(*args, **kwargs)
        except SimulationError as e:
            if self._is_failover_error(e) and await self._switch_to_fallback(str(e)):
                try:
                    return await coro_func(*args, **kwargs)
                except SimulationError as e2:
                    logger.error(f"Both primary and fallback RPC failed. Last error: {e2}")
                    raise e2 from e
            raise

    async def _post(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self.client.post(self._active_rpc_url, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise SimulationError(TIMEOUT, f"{method} timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise SimulationError(RATE_LIMITED, f"{method} rate limited (429)") from e
            raise SimulationError(NETWORK_ERROR, f"{method} failed with HTTP {e.response.status_code}") from e
        except httpx.TransportError as e:
            raise SimulationError(NETWORK_ERROR, f"{method} transport error: {e}") from e

        body = response.json()
        error = body.get("error")
        if error:
            raise SimulationError(error.get("code"), error.get("message", ""), error.get("data"))
        return body.get("result")

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        return await self._with_failover(self._post, method, params)

    async def estimate_gas(self, raw_tx: RawTx) -> int:
        """
        Simulate a transaction and return its gas estimate.

        Args:
            raw_tx: Transaction to simulate

        Returns:
            Estimated gas units

        Raises:
            SimulationError: If the transaction reverts or the node can't be reached
        """
        result = await self._rpc("eth_estimateGas", [raw_tx.to_call_params(self.sender)])
        gas = int(result, 16)
        logger.debug(f"Gas estimate: {gas}")
        return gas

    async def get_block_number(self) -> int:
        """Get the latest block number."""
        return int(await self._rpc("eth_blockNumber", []), 16)

    async def get_gas_price(self) -> int:
        """
        Get the node's gas price scaled by the configured multiplier.

        Returns:
            Gas price in wei
        """
        gas_price = int(await self._rpc("eth_gasPrice", []), 16)
        return gas_price * self.gas_price_multiplier // 100

    async def get_chain_id(self) -> int:
        """Get the chain id of the connected node."""
        return int(await self._rpc("eth_chainId", []), 16)

    async def get_l1_fee(self, data: str) -> int:
        """
        Get the L1 data fee of a transaction on an OP-stack chain.

        Args:
            data: Transaction calldata (0x prefixed hex)

        Returns:
            L1 fee in wei, as quoted by the GasPriceOracle predeploy
        """
        tx_bytes = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        calldata = function_selector(GET_L1_FEE_SIGNATURE) + encode(["bytes"], [tx_bytes])
        result = await self._rpc("eth_call", [{"to": GAS_PRICE_ORACLE, "data": "0x" + calldata.hex()}, "latest"])
        fee = int(result, 16)
        logger.debug(f"L1 fee: {fee}")
        return fee

    async def get_balance(self, address: Optional[str] = None) -> int:
        """
        Get native balance in wei.

        Args:
            address: Address to read (defaults to sender)
        """
        address = address or self.sender
        if address is None:
            raise ValueError("No sender or address provided")
        return int(await self._rpc("eth_getBalance", [address, "latest"]), 16)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
