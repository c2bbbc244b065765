# mint_relay/check_setup.py

import sys
import traceback
from decimal import Decimal

from mint_relay import chain
from mint_relay.config import Config
from mint_relay.pinning import check_authentication

MIN_MINTER_BALANCE_ETH = Decimal("0.1")
XSOLLA_VARS = ('XSOLLA_MERCHANT_ID', 'XSOLLA_PROJECT_ID', 'XSOLLA_API_KEY')


def check_setup():
    """
    Checks every external dependency of the relay: node connection, minter
    balance and permissions, Pinata keys and Xsolla settings.
    Returns True if nothing fatal was found.
    """
    print("Checking mint relay setup...")

    # --- Blockchain ---
    try:
        if not chain.connect_to_blockchain():
            print("Error: Blockchain connection failed. Check RPC_URL, MINTER_PRIVATE_KEY and CONTRACT_ADDRESS in .env")
            return False

        minter_address = chain.get_minter_address()
        balance = chain.get_minter_balance()
        print(f"Minter balance: {balance} ETH")
        if balance < MIN_MINTER_BALANCE_ETH:
            print(f"Warning: Low balance for minter! Need at least {MIN_MINTER_BALANCE_ETH} ETH")

        contract_minter = chain.get_contract_minter_service_address()
        print(f"Current minter address on contract: {contract_minter}")
        if contract_minter.lower() != minter_address.lower():
            print("Warning: Minter address does not match wallet address!")
    except Exception as e:
        print(f"Setup test failed: {e}")
        traceback.print_exc()
        return False

    # --- Pinata ---
    pinata_ok = check_authentication()
    print(f"Pinata auth: {'OK' if pinata_ok else 'Failed'}")

    # --- Xsolla ---
    for key in XSOLLA_VARS:
        if not getattr(Config, key):
            print(f"Warning: {key} not set in .env")

    return True


def main():
    if check_setup():
        print("\nSetup test completed successfully!")
    else:
        print("\nSetup test failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
