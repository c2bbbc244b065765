# mint_relay/config.py

import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name, default):
    """Reads an integer env var, falling back to default if unset or malformed."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        print(f"Warning: {name}={value!r} is not an integer. Using default {default}.")
        return default


# Minimal ABI for the medical card contract (only what the relay calls)
CONTRACT_ABI = [
    {
        "type": "function",
        "name": "safeMint",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "tokenMetadataUri", "type": "string"},
            {"name": "initialPrivateUri", "type": "string"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "minterServiceAddress",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "event",
        "name": "NFTMinted",
        "anonymous": False,
        "inputs": [
            {"name": "tokenId", "type": "uint256", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenURI", "type": "string", "indexed": False},
        ],
    },
]


class Config:
    """Settings loaded from the environment (.env)."""

    # --- Blockchain ---
    RPC_URL = os.getenv("RPC_URL")
    MINTER_PRIVATE_KEY = os.getenv("MINTER_PRIVATE_KEY")
    CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS")
    CONTRACT_ABI = CONTRACT_ABI
    TX_RECEIPT_TIMEOUT = _int_env("TX_RECEIPT_TIMEOUT", 180)

    # --- Pinata / IPFS ---
    PINATA_API_KEY = os.getenv("PINATA_API_KEY")
    PINATA_SECRET_KEY = os.getenv("PINATA_SECRET_KEY")
    PINATA_API_URL = os.getenv("PINATA_API_URL", "https://api.pinata.cloud")

    # --- Xsolla ---
    XSOLLA_API_KEY = os.getenv("XSOLLA_API_KEY")
    XSOLLA_MERCHANT_ID = os.getenv("XSOLLA_MERCHANT_ID")
    XSOLLA_PROJECT_ID = os.getenv("XSOLLA_PROJECT_ID")
    XSOLLA_API_URL = os.getenv("XSOLLA_API_URL", "https://api.xsolla.com/merchant/v2")
    PRODUCT_SKU = os.getenv("PRODUCT_SKU", "MEDICAL_CARD_NFT")
    CURRENCY = os.getenv("CURRENCY", "USD")

    # --- Card metadata ---
    DEFAULT_IMAGE_URI = os.getenv("DEFAULT_IMAGE_URI", "ipfs://QmDefaultImage")
    CARD_EXTERNAL_URL = os.getenv("CARD_EXTERNAL_URL", "https://yourapp.com/cards")

    # --- Web server ---
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:8080")
    MAX_UPLOAD_MB = _int_env("MAX_UPLOAD_MB", 50)
    MAX_CONTENT_LENGTH = MAX_UPLOAD_MB * 1024 * 1024  # Picked up by Flask
    PENDING_MINT_TTL_SECONDS = _int_env("PENDING_MINT_TTL_SECONDS", 86400)
    PORT = _int_env("PORT", 3000)
