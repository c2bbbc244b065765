# mint_relay/chain.py

import threading
import traceback
from collections import namedtuple

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3RPCError
from web3.logs import DISCARD

from mint_relay.config import Config
from mint_relay.errors import MintError

# Globals for w3, the contract instance and the minter account
w3 = None
contract = None
minter_account = None

GAS_LIMIT_FALLBACK = 500000  # Default gas limit if estimation fails
GAS_BUFFER = 1.2

# One mint at a time so overlapping webhooks don't reuse the minter's nonce
_tx_lock = threading.Lock()

MintResult = namedtuple('MintResult', ['tx_hash', 'token_id', 'block_number'])

# --- Blockchain Connection ---

def connect_to_blockchain():
    """
    Connects to the node at Config.RPC_URL, loads the minter account and
    the medical card contract. Returns True on success, False on failure.
    """
    global w3, contract, minter_account
    print("Attempting to connect to blockchain...")
    try:
        if not Config.RPC_URL:
            print("Error: RPC_URL is not configured.")
            return False

        w3 = Web3(Web3.HTTPProvider(Config.RPC_URL))

        if not w3.is_connected():
            print(f"Failed to connect to blockchain node at {Config.RPC_URL}")
            w3 = None
            return False

        print(f"Connected to blockchain: {Config.RPC_URL}, Chain ID: {w3.eth.chain_id}")

        if not Config.MINTER_PRIVATE_KEY:
            print("Error: MINTER_PRIVATE_KEY not set. Minting will fail.")
            return False
        try:
            minter_account = w3.eth.account.from_key(Config.MINTER_PRIVATE_KEY)
        except ValueError as e:
            print(f"Error: Invalid MINTER_PRIVATE_KEY format: {e}")
            minter_account = None
            return False
        print(f"Minter account: {minter_account.address}")

        if not Config.CONTRACT_ADDRESS:
            print("Error: CONTRACT_ADDRESS not set. Minting will fail.")
            return False

        checksum_address = Web3.to_checksum_address(Config.CONTRACT_ADDRESS)
        contract = w3.eth.contract(address=checksum_address, abi=Config.CONTRACT_ABI)
        print(f"Contract instance created at address: {checksum_address}")
        return True

    except Exception as e:
        print(f"Error connecting to blockchain or creating contract instance: {e}")
        traceback.print_exc()
        w3 = None
        contract = None
        minter_account = None
        return False


def _require_contract():
    """Connects on first use. Raises MintError if the contract is still unavailable."""
    if w3 is None or contract is None or minter_account is None:
        if not connect_to_blockchain():
            raise MintError("Blockchain connection unavailable (check RPC_URL, MINTER_PRIVATE_KEY, CONTRACT_ADDRESS).")

# --- Transaction Sending ---

def send_transaction(function_call, private_key):
    """
    Signs and sends a transaction for the given contract function call.
    Returns the transaction receipt; raises MintError on failure or revert.
    """
    account = w3.eth.account.from_key(private_key)
    sender = account.address

    current_nonce = w3.eth.get_transaction_count(sender)
    tx_params = {
        'from': sender,
        'nonce': current_nonce,
        'gasPrice': w3.eth.gas_price,
        # 'gas' will be estimated below
    }
    print(f"Sending transaction from {sender}. Nonce: {current_nonce}, Gas Price: {tx_params['gasPrice']}")

    try:
        gas_estimate = function_call.estimate_gas({'from': sender})
        tx_params['gas'] = int(gas_estimate * GAS_BUFFER)
        print(f"Estimated Gas: {gas_estimate}, Using Gas Limit: {tx_params['gas']}")
    except Exception as e:
        print(f"Warning: Could not estimate gas: {e}. Using default limit: {GAS_LIMIT_FALLBACK}")
        if 'execution reverted' in str(e):
            print("Gas estimation failed likely due to execution revert. Check minter permissions on the contract.")
        tx_params['gas'] = GAS_LIMIT_FALLBACK

    try:
        transaction = function_call.build_transaction(tx_params)
        signed_tx = w3.eth.account.sign_transaction(transaction, private_key)
        tx_hash = w3.eth.send_raw_transaction(signed_tx.raw_transaction)
    except (Web3RPCError, ValueError) as ve:
        # Node rejections (nonce, funds) arrive as Web3RPCError; local signing problems as ValueError
        if 'insufficient funds' in str(ve):
            raise MintError(f"Insufficient funds in minter account {sender}.") from ve
        if 'nonce too low' in str(ve) or 'replacement transaction underpriced' in str(ve):
            raise MintError(f"Nonce ({current_nonce}) or gas price issue: {ve}") from ve
        raise MintError(f"Transaction rejected: {ve}") from ve

    print(f"Transaction sent! Hash: {w3.to_hex(tx_hash)}")
    print("Waiting for transaction confirmation...")
    try:
        tx_receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=Config.TX_RECEIPT_TIMEOUT)
    except TimeExhausted as e:
        raise MintError(f"No receipt after {Config.TX_RECEIPT_TIMEOUT}s. Tx Hash: {w3.to_hex(tx_hash)}") from e

    if tx_receipt.status == 0:
        raise MintError(f"Transaction reverted. Tx Hash: {w3.to_hex(tx_hash)}")

    print(f"Transaction confirmed! Block: {tx_receipt.blockNumber}, Gas Used: {tx_receipt.gasUsed}")
    return tx_receipt

# --- Minting ---

def _token_id_from_receipt(receipt):
    """Reads the minted token ID from the NFTMinted event, if the contract emitted one."""
    try:
        events = contract.events.NFTMinted().process_receipt(receipt, errors=DISCARD)
    except Exception as e:
        print(f"Warning: Could not decode NFTMinted event: {e}")
        return None
    if not events:
        return None
    return events[0]['args']['tokenId']


def mint_medical_card(to_address, token_metadata_uri, private_uri):
    """
    Calls safeMint(to, tokenMetadataUri, initialPrivateUri) signed by the minter.
    Returns a MintResult; raises MintError if the address is invalid or the transaction fails.
    """
    if not Web3.is_address(to_address):
        raise MintError(f"Invalid recipient address: {to_address}")
    _require_contract()

    to_checksum = Web3.to_checksum_address(to_address)
    print(f"Minting medical card for {to_checksum}: {token_metadata_uri} / {private_uri}")
    func_call = contract.functions.safeMint(to_checksum, token_metadata_uri, private_uri)

    with _tx_lock:
        receipt = send_transaction(func_call, Config.MINTER_PRIVATE_KEY)

    token_id = _token_id_from_receipt(receipt)
    return MintResult(
        tx_hash=w3.to_hex(receipt.transactionHash),
        token_id=token_id,
        block_number=receipt.blockNumber,
    )

# --- Diagnostics (View/Read-Only) ---

def get_minter_address():
    """Address of the minter wallet, or None if not loaded."""
    if minter_account is not None:
        return minter_account.address
    if Config.MINTER_PRIVATE_KEY:
        try:
            return Account.from_key(Config.MINTER_PRIVATE_KEY).address
        except ValueError:
            return None
    return None


def get_minter_balance():
    """Minter balance in ether (Decimal)."""
    _require_contract()
    balance = w3.eth.get_balance(minter_account.address)
    return w3.from_wei(balance, 'ether')


def get_contract_minter_service_address():
    """Reads minterServiceAddress() from the contract."""
    _require_contract()
    return contract.functions.minterServiceAddress().call()
