from unittest.mock import MagicMock

import pytest

from eth_account import Account
from eth_utils import to_checksum_address
from web3.exceptions import TimeExhausted

from flashfill_relayer.chain.settlement_client import Web3ChainClient
from flashfill_relayer.core.errors import ChainConfigurationError, ErrorCode, SubmissionFailure

from conftest import SETTLEMENT, USDC

PRIVATE_KEY = "0x" + "4c" * 32
TX_HASH = bytes.fromhex("ab" * 32)


@pytest.fixture
def web3():
    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.contract.return_value.functions.flashLoanFill.return_value.build_transaction.return_value = {
        "to": SETTLEMENT,
        "data": "0x",
    }
    return w3


@pytest.fixture
def client(web3):
    return Web3ChainClient("http://rpc", 42161, private_key=PRIVATE_KEY, web3=web3)


def test_filler_address_from_key(client):
    assert client.filler_address == Account.from_key(PRIVATE_KEY).address


def test_missing_key():
    client = Web3ChainClient("http://rpc", 42161, private_key=None, web3=MagicMock())
    with pytest.raises(ChainConfigurationError, match="RELAYER_PRIVATE_KEY not configured"):
        client.filler_address


def test_submit_builds_signs_and_sends(client, web3):
    tx_hash = client.submit_flash_loan_fill(SETTLEMENT, USDC, 100, b"\x01\x02", gas_limit=1_000_000)

    assert tx_hash == "0x" + "ab" * 32

    fn = web3.eth.contract.return_value.functions.flashLoanFill
    args = fn.call_args.args
    assert args[1] == 100
    assert args[2] == b"\x01\x02"

    tx_params = fn.return_value.build_transaction.call_args.args[0]
    assert tx_params["gas"] == 1_000_000
    assert tx_params["chainId"] == 42161
    assert tx_params["nonce"] == 7
    assert tx_params["from"] == client.filler_address

    web3.eth.account.sign_transaction.assert_called_once()


def test_submit_sends_signed_raw_transaction(client, web3):
    # real signer, only the RPC side is mocked
    web3.eth.account = Account
    web3.eth.contract.return_value.functions.flashLoanFill.return_value.build_transaction.return_value = {
        "to": to_checksum_address(SETTLEMENT),
        "data": "0x01",
        "value": 0,
        "gas": 1_000_000,
        "gasPrice": 10**9,
        "nonce": 7,
        "chainId": 42161,
    }

    client.submit_flash_loan_fill(SETTLEMENT, USDC, 100, b"", gas_limit=1_000_000)

    (raw,) = web3.eth.send_raw_transaction.call_args.args
    assert isinstance(raw, bytes)
    assert len(raw) > 0


def test_submit_error_is_classified(client, web3):
    web3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

    with pytest.raises(SubmissionFailure) as exc:
        client.submit_flash_loan_fill(SETTLEMENT, USDC, 100, b"", gas_limit=1)

    assert "Nonce" in exc.value.message
    assert exc.value.code == ErrorCode.FLASH_LOAN_FAILED
    assert exc.value.tx_hash is None


def test_receipt_success(client, web3):
    web3.eth.wait_for_transaction_receipt.return_value = {"blockNumber": 55, "status": 1, "gasUsed": 21000}

    receipt = client.wait_for_receipt("0xabc", timeout=3)

    assert receipt.block_number == 55
    assert receipt.gas_used == 21000
    web3.eth.wait_for_transaction_receipt.assert_called_once_with("0xabc", timeout=3)


def test_receipt_revert(client, web3):
    web3.eth.wait_for_transaction_receipt.return_value = {"blockNumber": 55, "status": 0}

    with pytest.raises(SubmissionFailure) as exc:
        client.wait_for_receipt("0xabc")

    assert exc.value.message == "Transaction reverted"
    assert exc.value.tx_hash == "0xabc"


def test_receipt_timeout(client, web3):
    web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not in chain")

    with pytest.raises(SubmissionFailure) as exc:
        client.wait_for_receipt("0xabc", timeout=1)

    assert "Timed out" in exc.value.message
    assert exc.value.tx_hash == "0xabc"
