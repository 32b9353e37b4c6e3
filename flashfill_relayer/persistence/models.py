#===================================================================
# ORDER RECORD CONTRACT
#
# pending    : persisted, waiting for a fill attempt
# filling    : fill transaction being built / submitted / confirmed
# filled     : confirmed on chain (tx_hash, filled_at, block_number set)
# failed     : build or submission error (error_message set)
# cancelled  : cancelled while pending
#
# uint256 values (salt, amounts, maker traits) are kept as decimal strings.
#===================================================================

from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any

from eth_utils import to_checksum_address

from flashfill_relayer.domain.business_models import OrderStatus


@dataclass(frozen=True)
class OrderTerms:
    """Maker-signed economic terms of a limit order"""
    salt: int
    maker: str
    receiver: str
    maker_asset: str
    taker_asset: str
    making_amount: int
    taking_amount: int
    maker_traits: int

    def as_tuple(self) -> tuple:
        """Field order of the settlement contract's order struct, addresses checksummed."""
        return (
            self.salt,
            to_checksum_address(self.maker),
            to_checksum_address(self.receiver),
            to_checksum_address(self.maker_asset),
            to_checksum_address(self.taker_asset),
            self.making_amount,
            self.taking_amount,
            self.maker_traits,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "salt": str(self.salt),
            "maker": self.maker,
            "receiver": self.receiver,
            "makerAsset": self.maker_asset,
            "takerAsset": self.taker_asset,
            "makingAmount": str(self.making_amount),
            "takingAmount": str(self.taking_amount),
            "makerTraits": str(self.maker_traits),
        }


@dataclass
class OrderRecord:
    # ---- Identity ----
    id: str
    order_hash: str
    extension_hash: str

    # ---- Signed payload ----
    terms: OrderTerms
    maker_signature: str
    extension_calldata: str
    extension_signature: str

    # ---- State ----
    status: OrderStatus = OrderStatus.PENDING
    created_at: Optional[int] = None    # epoch ms, store assigns when None
    updated_at: int = 0                 # epoch ms

    # ---- Terminal fields ----
    filled_at: Optional[int] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    error_message: Optional[str] = None

    def with_updates(self, **changes: Any) -> "OrderRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "orderHash": self.order_hash,
            "extensionHash": self.extension_hash,
            "order": self.terms.to_dict(),
            "orderSignature": self.maker_signature,
            "extensionCalldata": self.extension_calldata,
            "extensionSignature": self.extension_signature,
            "status": self.status.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.filled_at is not None:
            data["filledAt"] = self.filled_at
        if self.tx_hash:
            data["txHash"] = self.tx_hash
        if self.block_number is not None:
            data["blockNumber"] = self.block_number
        if self.error_message:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "OrderRecord":
        terms = OrderTerms(
            salt=int(row["salt"]),
            maker=row["maker"],
            receiver=row["receiver"],
            maker_asset=row["maker_asset"],
            taker_asset=row["taker_asset"],
            making_amount=int(row["making_amount"]),
            taking_amount=int(row["taking_amount"]),
            maker_traits=int(row["maker_traits"]),
        )
        return cls(
            id=row["id"],
            order_hash=row["order_hash"],
            extension_hash=row["extension_hash"] or "",
            terms=terms,
            maker_signature=row["maker_signature"],
            extension_calldata=row["extension_calldata"],
            extension_signature=row["extension_signature"],
            status=OrderStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            filled_at=row["filled_at"],
            tx_hash=row["tx_hash"],
            block_number=row["block_number"],
            error_message=row["error_message"],
        )
