"""
Set up the gas payer wallet.

The gas payer (relayer) key signs and funds every smart account deployment
and execution. Usage:

    python setup_gas_payer.py             # generate a key, check current config
    python setup_gas_payer.py --encrypt   # encrypt the configured key for .env
"""
import sys

from dotenv import load_dotenv

load_dotenv()

from eth_account import Account
from web3 import Web3

from config.settings import settings
from config.constants import default_rpc_url
from core.wallet.encryption import KeyEncryption, load_gas_payer_key


def print_new_wallet():
    print("Option 1: Generate a NEW gas payer wallet")
    print("-" * 80)
    new_account = Account.create()
    print(f"Address: {new_account.address}")
    print(f"Private Key: 0x{new_account.key.hex()}")
    print()
    print("1. Save this private key securely")
    print("2. Fund this address with native currency for gas")
    print("3. Add to .env: GAS_PAYER_PRIVATE_KEY=<private key>")
    print()


def print_encrypted_key():
    if not settings.gas_payer_private_key:
        print("GAS_PAYER_PRIVATE_KEY is not set, nothing to encrypt")
        sys.exit(1)

    master_key = settings.master_encryption_key or KeyEncryption.generate_master_key()
    encrypted, salt = KeyEncryption(master_key).encrypt(settings.gas_payer_private_key)

    print("Replace GAS_PAYER_PRIVATE_KEY in .env with:")
    print()
    if not settings.master_encryption_key:
        print(f"MASTER_ENCRYPTION_KEY={master_key}")
    print(f"GAS_PAYER_ENCRYPTED_KEY={encrypted.decode()}")
    print(f"GAS_PAYER_KEY_SALT={salt.hex()}")


def check_current_config():
    print("=" * 80)
    print("CURRENT CONFIGURATION CHECK")
    print("=" * 80)

    if not settings.has_gas_payer_key:
        print("No gas payer configured")
        print()
        print("Relaying is disabled until GAS_PAYER_PRIVATE_KEY (or the encrypted")
        print("variant) is set.")
        return

    try:
        account = Account.from_key(load_gas_payer_key(settings))
    except ValueError as e:
        print(f"Invalid gas payer key: {e}")
        return

    print(f"Gas payer configured: {account.address}")

    rpc_url = settings.rpc_url or default_rpc_url(settings.chain_id)
    w3 = Web3(Web3.HTTPProvider(rpc_url))
    try:
        balance = w3.eth.get_balance(account.address) / 1e18
    except Exception as e:
        print(f"Could not read balance from {rpc_url}: {e}")
        return

    print(f"Balance on chain {settings.chain_id}: {balance:.4f}")
    if balance < 0.01:
        print("Low balance! Deployments and relays will fail to pay for gas")
    else:
        print("Sufficient balance for relaying")


def main():
    if len(sys.argv) > 1 and sys.argv[1] == "--encrypt":
        print_encrypted_key()
        return

    print("=" * 80)
    print("GAS PAYER WALLET SETUP")
    print("=" * 80)
    print()
    print_new_wallet()
    check_current_config()
    print("=" * 80)


if __name__ == "__main__":
    main()
