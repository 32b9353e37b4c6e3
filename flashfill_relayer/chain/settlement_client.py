#!/usr/bin/env python3
"""
Settlement chain client

Responsibilities:
- Hold the filler account (RELAYER_PRIVATE_KEY)
- Sign and broadcast flashLoanFill(asset, amount, params)
- Block on the receipt with a bounded timeout

Never touches the order store. Errors surface as SubmissionFailure
carrying the tx hash when one was broadcast.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from eth_account import Account
from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import TimeExhausted

from flashfill_relayer.core.errors import (
    ChainConfigurationError,
    ErrorCode,
    SubmissionFailure,
    describe_chain_error,
)

logger = logging.getLogger(__name__)

FLASH_LOAN_FILL_ABI = [
    {
        "type": "function",
        "name": "flashLoanFill",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "params", "type": "bytes"},
        ],
        "outputs": [],
    }
]


@dataclass(frozen=True)
class FillReceipt:
    tx_hash: str
    block_number: int
    status: int
    gas_used: Optional[int] = None


class Web3ChainClient:
    """
    Chain submission collaborator for the fill executor.

    Web3 connects lazily on first call; constructing the client
    never touches the network.
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        private_key: Optional[str] = None,
        web3: Optional[Web3] = None,
    ):
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self._private_key = private_key
        self._account = Account.from_key(private_key) if private_key else None
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url))

    # --------------------------------------------------
    # Account
    # --------------------------------------------------

    @property
    def filler_address(self) -> str:
        if self._account is None:
            raise ChainConfigurationError("RELAYER_PRIVATE_KEY not configured")
        return self._account.address

    # --------------------------------------------------
    # Submission
    # --------------------------------------------------

    def submit_flash_loan_fill(
        self,
        settlement: str,
        asset: str,
        amount: int,
        params: bytes,
        gas_limit: int,
    ) -> str:
        """Sign and broadcast. Returns the 0x tx hash."""
        filler = self.filler_address

        try:
            contract = self.web3.eth.contract(
                address=to_checksum_address(settlement),
                abi=FLASH_LOAN_FILL_ABI,
            )
            tx = contract.functions.flashLoanFill(
                to_checksum_address(asset),
                amount,
                params,
            ).build_transaction({
                "from": filler,
                "chainId": self.chain_id,
                "gas": gas_limit,
                "nonce": self.web3.eth.get_transaction_count(filler),
            })

            signed = self.web3.eth.account.sign_transaction(tx, self._private_key)
            tx_hash = Web3.to_hex(self.web3.eth.send_raw_transaction(signed.raw_transaction))
        except Exception as e:
            raise SubmissionFailure(
                describe_chain_error(e, "submitting flash loan fill"),
                code=ErrorCode.FLASH_LOAN_FAILED,
            ) from e

        logger.info(
            "FILL_TX_SENT | tx=%s | settlement=%s | asset=%s | amount=%s",
            tx_hash, settlement, asset, amount,
        )
        return tx_hash

    def wait_for_receipt(self, tx_hash: str, timeout: float = 120) -> FillReceipt:
        """Blocks until mined or timeout. A reverted receipt raises."""
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise SubmissionFailure(
                f"Timed out after {timeout}s waiting for transaction {tx_hash}",
                code=ErrorCode.NETWORK_ERROR,
                tx_hash=tx_hash,
            ) from e
        except Exception as e:
            raise SubmissionFailure(
                describe_chain_error(e, "waiting for confirmation"),
                code=ErrorCode.NETWORK_ERROR,
                tx_hash=tx_hash,
            ) from e

        result = FillReceipt(
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            status=receipt["status"],
            gas_used=receipt.get("gasUsed"),
        )

        if result.status != 1:
            logger.error("FILL_TX_REVERTED | tx=%s | block=%s", tx_hash, result.block_number)
            raise SubmissionFailure(
                "Transaction reverted",
                code=ErrorCode.TRANSACTION_FAILED,
                tx_hash=tx_hash,
            )

        logger.info(
            "FILL_TX_CONFIRMED | tx=%s | block=%s | gas=%s",
            tx_hash, result.block_number, result.gas_used,
        )
        return result
