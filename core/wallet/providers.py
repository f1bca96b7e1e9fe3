"""Wallet providers the client signs through.

A provider exposes an EIP-1193 style ``request(method, params)`` entry point
plus the signer-level ``sign_message`` that always applies the EIP-191
personal-message prefix. Any method may prompt a human and block for a while.
"""

import json
import logging
from itertools import count
from typing import Any, Iterable, List, Optional, Protocol, runtime_checkable

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from eth_utils import to_bytes

from config import settings

logger = logging.getLogger(__name__)

# Pseudo-method name for the signer-level message entry point
SIGN_MESSAGE = "signMessage"

ALL_METHODS = (
    "eth_accounts",
    "eth_sign",
    "personal_sign",
    "eth_signTypedData_v4",
    SIGN_MESSAGE,
)

# EIP-1193 "unsupported method" error code
UNSUPPORTED_METHOD = 4200


class WalletRequestError(Exception):
    """A wallet rejected or failed a request."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


@runtime_checkable
class WalletProvider(Protocol):
    """Handle to a wallet able to sign for one owner address."""

    async def request(self, method: str, params: List[Any]) -> Any:
        ...

    async def sign_message(self, message: bytes) -> str:
        ...

    async def get_address(self) -> str:
        ...


class LocalWalletProvider:
    """
    Wallet backed by a local private key.

    ``supported_methods`` restricts which entry points answer, to reproduce
    wallets that refuse raw-hash or typed-data signing. ``omit_recovery_byte``
    strips ``v`` from every signature, as some embedded wallets do.
    """

    def __init__(
        self,
        private_key: str,
        supported_methods: Optional[Iterable[str]] = None,
        omit_recovery_byte: bool = False,
    ):
        self.account = Account.from_key(private_key)
        self.supported_methods = set(supported_methods or ALL_METHODS)
        self.omit_recovery_byte = omit_recovery_byte

    @property
    def address(self) -> str:
        return self.account.address

    async def get_address(self) -> str:
        return self.account.address

    def _require(self, method: str) -> None:
        if method not in self.supported_methods:
            raise WalletRequestError(f"Method {method} is not supported", code=UNSUPPORTED_METHOD)

    def _require_signer(self, address: str) -> None:
        if address.lower() != self.account.address.lower():
            raise WalletRequestError(f"Unknown account {address}", code=4100)

    def _format(self, signature: bytes) -> str:
        if self.omit_recovery_byte:
            signature = signature[:64]
        return "0x" + bytes(signature).hex()

    async def request(self, method: str, params: List[Any]) -> Any:
        self._require(method)

        if method == "eth_accounts":
            return [self.account.address]

        if method == "eth_sign":
            address, message_hash = params
            self._require_signer(address)
            signed = self.account.unsafe_sign_hash(to_bytes(hexstr=message_hash))
            return self._format(signed.signature)

        if method == "personal_sign":
            message, address = params
            self._require_signer(address)
            signed = self.account.sign_message(encode_defunct(hexstr=message))
            return self._format(signed.signature)

        if method == "eth_signTypedData_v4":
            address, typed_data = params
            self._require_signer(address)
            if isinstance(typed_data, str):
                typed_data = json.loads(typed_data)
            signed = self.account.sign_message(encode_typed_data(full_message=typed_data))
            return self._format(signed.signature)

        raise WalletRequestError(f"Method {method} is not supported", code=UNSUPPORTED_METHOD)

    async def sign_message(self, message: bytes) -> str:
        self._require(SIGN_MESSAGE)
        signed = self.account.sign_message(encode_defunct(primitive=message))
        return self._format(signed.signature)


class JsonRpcWalletProvider:
    """Wallet reached over JSON-RPC 2.0 (an external signer or node)."""

    def __init__(
        self,
        url: str,
        address: Optional[str] = None,
        timeout: float = 120.0,
    ):
        self.url = url
        self._address = address
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = count(1)

    @classmethod
    def from_settings(cls, app_settings=None, address: Optional[str] = None) -> "JsonRpcWalletProvider":
        """
        Build a provider for the external signer configured in settings.

        Raises:
            ValueError: If WALLET_RPC_URL is not set
        """
        app_settings = app_settings or settings
        if not app_settings.wallet_rpc_url:
            raise ValueError("WALLET_RPC_URL not configured")
        return cls(
            app_settings.wallet_rpc_url,
            address=address,
            timeout=app_settings.wallet_rpc_timeout,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        client = await self._get_client()

        logger.debug(f"Wallet RPC {method} -> {self.url}")
        try:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise WalletRequestError(f"Wallet RPC {method} failed: {e}") from e

        body = response.json()
        error = body.get("error")
        if error:
            raise WalletRequestError(
                error.get("message", f"Wallet RPC {method} failed"),
                code=error.get("code"),
            )
        return body.get("result")

    async def get_address(self) -> str:
        if self._address is None:
            accounts = await self.request("eth_accounts", [])
            if not accounts:
                raise WalletRequestError("Wallet exposes no accounts")
            self._address = accounts[0]
        return self._address

    async def sign_message(self, message: bytes) -> str:
        # JSON-RPC signers expose message signing through personal_sign
        address = await self.get_address()
        return await self.request("personal_sign", ["0x" + message.hex(), address])
