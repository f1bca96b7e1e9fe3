#!/usr/bin/env python3
"""
Relay an ERC20 transfer from an owner's smart account without paying gas.

Usage:
    python relay_transfer.py <owner_private_key> <token> <recipient> <amount>
    python relay_transfer.py --wallet-rpc <token> <recipient> <amount>

The owner signs locally with the given key, or with --wallet-rpc through the
external signer at WALLET_RPC_URL. The gas payer key from .env submits.
"""
import asyncio
import logging
import sys

from dotenv import load_dotenv

# Load environment variables before importing settings
load_dotenv()

from config import settings
from core.gasless.exceptions import GaslessError
from core.wallet.providers import JsonRpcWalletProvider, LocalWalletProvider
from services.gasless_client import GaslessClient
from services.gasless_service import GaslessService

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=settings.log_level,
)
logger = logging.getLogger(__name__)


async def main():
    if len(sys.argv) != 5:
        print(__doc__)
        sys.exit(1)

    signer, token, recipient, amount = sys.argv[1:]

    if signer == "--wallet-rpc":
        provider = JsonRpcWalletProvider.from_settings(settings)
        logger.info(f"Signing through wallet RPC at {provider.url}")
    else:
        provider = LocalWalletProvider(signer)

    service = GaslessService.from_settings(settings)
    client = GaslessClient(service, provider)

    try:
        result = await client.transfer_token(token, recipient, int(amount))
    except GaslessError as e:
        logger.error(f"Relay failed ({e.kind}, retryable={e.retryable}): {e.message}")
        sys.exit(1)
    finally:
        await service.close()
        if isinstance(provider, JsonRpcWalletProvider):
            await provider.close()

    logger.info(f"Transfer relayed: {result.transaction_hash}")
    print(result.to_dict())


if __name__ == "__main__":
    asyncio.run(main())
