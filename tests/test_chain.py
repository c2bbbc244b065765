"""safeMint transaction flow against a mocked web3 client."""

from unittest.mock import MagicMock, patch

import pytest
from web3.exceptions import TimeExhausted, Web3RPCError

from mint_relay import chain
from mint_relay.config import Config
from mint_relay.errors import MintError

from conftest import USER_ADDRESS

MINTER_KEY = "0x" + "11" * 32


@pytest.fixture
def web3_mocks():
    """Installs a fake w3/contract/minter in the chain module."""
    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.gas_price = 1_000_000_000
    w3.eth.account.from_key.return_value = MagicMock(address="0xMinter")
    w3.eth.account.sign_transaction.return_value = MagicMock(raw_transaction=b"signed")
    w3.eth.send_raw_transaction.return_value = b"\xab\xcd"
    w3.eth.wait_for_transaction_receipt.return_value = MagicMock(
        status=1, blockNumber=42, gasUsed=90000, transactionHash=b"\xab\xcd"
    )
    w3.to_hex.side_effect = lambda value: "0x" + bytes(value).hex()

    contract = MagicMock()
    func_call = contract.functions.safeMint.return_value
    func_call.estimate_gas.return_value = 100000
    func_call.build_transaction.side_effect = lambda params: dict(params, data="0xdeadbeef")
    contract.events.NFTMinted.return_value.process_receipt.return_value = [
        {"args": {"tokenId": 3, "to": USER_ADDRESS, "tokenURI": "ipfs://QmPublic"}}
    ]

    minter = MagicMock(address="0xMinter")
    with patch.object(chain, "w3", w3), patch.object(chain, "contract", contract), \
            patch.object(chain, "minter_account", minter), \
            patch.object(Config, "MINTER_PRIVATE_KEY", MINTER_KEY):
        yield w3, contract


class TestMintMedicalCard:

    def test_mints_and_reads_token_id(self, web3_mocks):
        w3, contract = web3_mocks

        result = chain.mint_medical_card(USER_ADDRESS.lower(), "ipfs://QmPublic", "ipfs://QmPrivate")

        contract.functions.safeMint.assert_called_once_with(
            USER_ADDRESS, "ipfs://QmPublic", "ipfs://QmPrivate"
        )
        assert result == chain.MintResult(tx_hash="0xabcd", token_id=3, block_number=42)
        w3.eth.account.sign_transaction.assert_called_once()
        assert w3.eth.account.sign_transaction.call_args.args[1] == MINTER_KEY
        w3.eth.send_raw_transaction.assert_called_once_with(b"signed")

    def test_gas_estimate_gets_buffer(self, web3_mocks):
        w3, contract = web3_mocks
        chain.mint_medical_card(USER_ADDRESS, "ipfs://QmA", "ipfs://QmB")

        params = contract.functions.safeMint.return_value.build_transaction.call_args.args[0]
        assert params["gas"] == 120000
        assert params["nonce"] == 7
        assert params["from"] == "0xMinter"

    def test_gas_estimate_failure_uses_fallback(self, web3_mocks):
        w3, contract = web3_mocks
        func_call = contract.functions.safeMint.return_value
        func_call.estimate_gas.side_effect = Exception("execution reverted")

        chain.mint_medical_card(USER_ADDRESS, "ipfs://QmA", "ipfs://QmB")

        params = func_call.build_transaction.call_args.args[0]
        assert params["gas"] == chain.GAS_LIMIT_FALLBACK

    def test_reverted_transaction(self, web3_mocks):
        w3, _ = web3_mocks
        w3.eth.wait_for_transaction_receipt.return_value = MagicMock(status=0, transactionHash=b"\x01")
        with pytest.raises(MintError, match="reverted"):
            chain.mint_medical_card(USER_ADDRESS, "ipfs://QmA", "ipfs://QmB")

    def test_insufficient_funds(self, web3_mocks):
        w3, _ = web3_mocks
        w3.eth.send_raw_transaction.side_effect = Web3RPCError("insufficient funds for gas * price + value")
        with pytest.raises(MintError, match="Insufficient funds"):
            chain.mint_medical_card(USER_ADDRESS, "ipfs://QmA", "ipfs://QmB")

    def test_nonce_too_low(self, web3_mocks):
        w3, _ = web3_mocks
        w3.eth.send_raw_transaction.side_effect = Web3RPCError("nonce too low")
        with pytest.raises(MintError, match=r"Nonce \(7\)"):
            chain.mint_medical_card(USER_ADDRESS, "ipfs://QmA", "ipfs://QmB")

    def test_receipt_timeout(self, web3_mocks):
        w3, _ = web3_mocks
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not in chain after 180s")
        with pytest.raises(MintError, match="No receipt"):
            chain.mint_medical_card(USER_ADDRESS, "ipfs://QmA", "ipfs://QmB")

    def test_no_event_means_unknown_token_id(self, web3_mocks):
        _, contract = web3_mocks
        contract.events.NFTMinted.return_value.process_receipt.return_value = []
        result = chain.mint_medical_card(USER_ADDRESS, "ipfs://QmA", "ipfs://QmB")
        assert result.token_id is None

    def test_invalid_address(self, web3_mocks):
        _, contract = web3_mocks
        with pytest.raises(MintError, match="Invalid recipient"):
            chain.mint_medical_card("not-an-address", "ipfs://QmA", "ipfs://QmB")
        contract.functions.safeMint.assert_not_called()


class TestConnection:

    @patch.object(Config, "RPC_URL", None)
    def test_mint_without_rpc_fails(self):
        with patch.object(chain, "w3", None), patch.object(chain, "contract", None), \
                patch.object(chain, "minter_account", None):
            with pytest.raises(MintError, match="Blockchain connection unavailable"):
                chain.mint_medical_card(USER_ADDRESS, "ipfs://QmA", "ipfs://QmB")

    @patch.object(Config, "RPC_URL", None)
    def test_connect_without_rpc(self):
        assert chain.connect_to_blockchain() is False

    @patch.object(Config, "RPC_URL", "http://node.test")
    @patch("mint_relay.chain.Web3")
    def test_connect_node_down(self, mock_web3):
        mock_web3.return_value.is_connected.return_value = False
        with patch.object(chain, "w3", None), patch.object(chain, "contract", None), \
                patch.object(chain, "minter_account", None):
            assert chain.connect_to_blockchain() is False
            assert chain.w3 is None
        mock_web3.HTTPProvider.assert_called_once_with("http://node.test")


class TestMinterAddress:

    def test_from_loaded_account(self):
        with patch.object(chain, "minter_account", MagicMock(address="0xLoaded")):
            assert chain.get_minter_address() == "0xLoaded"

    def test_derived_from_key(self):
        # Well-known key/address pair (private key 0x...01)
        key = "0x" + "00" * 31 + "01"
        with patch.object(chain, "minter_account", None), patch.object(Config, "MINTER_PRIVATE_KEY", key):
            assert chain.get_minter_address() == "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"

    def test_not_configured(self):
        with patch.object(chain, "minter_account", None), patch.object(Config, "MINTER_PRIVATE_KEY", None):
            assert chain.get_minter_address() is None


class TestConnectSuccess:
    """Happy-path connection with a fully mocked Web3 class."""

    @patch.multiple(Config, RPC_URL="http://node.test", MINTER_PRIVATE_KEY=MINTER_KEY,
                    CONTRACT_ADDRESS=USER_ADDRESS.lower())
    @patch("mint_relay.chain.Web3")
    def test_loads_minter_and_contract(self, mock_web3):
        node = mock_web3.return_value
        node.is_connected.return_value = True
        node.eth.chain_id = 11155111
        node.eth.account.from_key.return_value = MagicMock(address="0xMinter")
        mock_web3.to_checksum_address.return_value = USER_ADDRESS

        with patch.object(chain, "w3", None), patch.object(chain, "contract", None), \
                patch.object(chain, "minter_account", None):
            assert chain.connect_to_blockchain() is True
            assert chain.minter_account.address == "0xMinter"
            assert chain.contract is node.eth.contract.return_value

        node.eth.contract.assert_called_once_with(address=USER_ADDRESS, abi=Config.CONTRACT_ABI)
