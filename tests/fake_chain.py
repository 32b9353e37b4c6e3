from flashfill_relayer.chain.settlement_client import FillReceipt
from flashfill_relayer.core.errors import ChainConfigurationError, SubmissionFailure

FILLER = "0x" + "ab" * 20


class FakeChainClient:
    """In-memory stand-in for Web3ChainClient"""

    def __init__(self, filler=FILLER):
        self._filler = filler
        self.submissions = []
        self.block_number = 1000
        self.submit_error = None
        self.revert = False
        self.on_submit = None

    @property
    def filler_address(self):
        if self._filler is None:
            raise ChainConfigurationError("RELAYER_PRIVATE_KEY not configured")
        return self._filler

    def submit_flash_loan_fill(self, settlement, asset, amount, params, gas_limit):
        if self.on_submit:
            self.on_submit()
        if self.submit_error:
            raise self.submit_error
        self.submissions.append({
            "settlement": settlement,
            "asset": asset,
            "amount": amount,
            "params": params,
            "gas_limit": gas_limit,
        })
        return "0x" + f"{len(self.submissions):064x}"

    def wait_for_receipt(self, tx_hash, timeout=120):
        if self.revert:
            raise SubmissionFailure("Transaction reverted", tx_hash=tx_hash)
        self.block_number += 1
        return FillReceipt(tx_hash=tx_hash, block_number=self.block_number, status=1)
