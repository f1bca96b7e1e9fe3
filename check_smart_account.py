"""
Check the smart account of an owner address.

Usage:
    python check_smart_account.py <owner_address> [--deploy]

Without --deploy the account is only inspected, never created.
"""
import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from config.settings import settings
from core.blockchain.smart_account import SmartAccountGateway
from core.gasless.account_cache import SmartAccountCache
from core.gasless.exceptions import GaslessError
from services.smart_account_resolver import SmartAccountResolver, derive_salt

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=settings.log_level,
)


async def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    owner = sys.argv[1]
    deploy = "--deploy" in sys.argv[2:]

    print("=" * 80)
    print("SMART ACCOUNT STATUS")
    print("=" * 80)
    print()

    chain = SmartAccountGateway.from_settings(settings)
    try:
        address = await chain.predict_address(owner, derive_salt(owner))
        print(f"Owner:              {owner}")
        print(f"Smart account:      {address}")
        print(f"Factory:            {chain.factory_address}")
        print(f"Chain ID:           {chain.chain_id}")

        deployed = await chain.is_deployed(address)
        print(f"Deployed:           {deployed}")

        if not deployed and not deploy:
            print()
            print("Run with --deploy to create it from the gas payer wallet")
            return

        resolver = SmartAccountResolver(chain, SmartAccountCache(), auto_deploy=deploy)
        record = await resolver.resolve(owner)
        print(f"On-chain owner:     {record.owner_address}")
        print(f"Account nonce:      {record.cached_nonce}")
    except GaslessError as e:
        print(f"Failed ({e.kind}): {e.message}")
        sys.exit(1)
    finally:
        await chain.close()

    print()
    print("=" * 80)


if __name__ == "__main__":
    asyncio.run(main())
