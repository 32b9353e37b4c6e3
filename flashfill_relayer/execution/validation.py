"""
Submission validation.

Hard validation layer for new orders.
Any failure here MUST reject the submission before persistence.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from flashfill_relayer.core.errors import ErrorCode, OrderValidationError
from flashfill_relayer.persistence.models import OrderTerms
from flashfill_relayer.utils.utils import parse_uint, validate_required_fields

REQUIRED_FIELDS = [
    "orderHash",
    "order",
    "orderSignature",
    "extensionCalldata",
    "extensionSignature",
]

# allowedSender occupies the low 80 bits of makerTraits
ALLOWED_SENDER_BITS = 80
ALLOWED_SENDER_MASK = (1 << ALLOWED_SENDER_BITS) - 1

_HEX_RE = re.compile(r"^0x([0-9a-fA-F]{2})*$")
_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class OrderTermsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    salt: int
    maker: str
    receiver: str
    maker_asset: str = Field(alias="makerAsset")
    taker_asset: str = Field(alias="takerAsset")
    making_amount: int = Field(alias="makingAmount")
    taking_amount: int = Field(alias="takingAmount")
    maker_traits: int = Field(alias="makerTraits")

    @field_validator("maker", "receiver", "maker_asset", "taker_asset", mode="before")
    @classmethod
    def _address(cls, value: Any) -> str:
        if not isinstance(value, str) or not is_address(value):
            raise ValueError("must be a valid address")
        return to_checksum_address(value)

    @field_validator("salt", "making_amount", "taking_amount", "maker_traits", mode="before")
    @classmethod
    def _uint(cls, value: Any) -> int:
        return parse_uint(value)

    def to_terms(self) -> OrderTerms:
        return OrderTerms(
            salt=self.salt,
            maker=self.maker,
            receiver=self.receiver,
            maker_asset=self.maker_asset,
            taker_asset=self.taker_asset,
            making_amount=self.making_amount,
            taking_amount=self.taking_amount,
            maker_traits=self.maker_traits,
        )


@dataclass(frozen=True)
class ValidatedSubmission:
    order_hash: str
    extension_hash: str
    terms: OrderTerms
    maker_signature: str
    extension_calldata: str
    extension_signature: str


def _require_hex(payload: Dict[str, Any], name: str, pattern=_HEX_RE, allow_empty=False) -> str:
    value = payload.get(name)
    if not isinstance(value, str) or not pattern.match(value):
        raise OrderValidationError(f"Invalid {name}: expected 0x-prefixed hex")
    if not allow_empty and value == "0x":
        raise OrderValidationError(f"Invalid {name}: empty")
    return value.lower()


def maker_traits_allow_sender(maker_traits: int, sender: str) -> bool:
    return (maker_traits & ALLOWED_SENDER_MASK) == (int(sender, 16) & ALLOWED_SENDER_MASK)


def validate_submission(
    payload: Dict[str, Any],
    allowed_sender: Optional[str] = None,
) -> ValidatedSubmission:
    if not isinstance(payload, dict):
        raise OrderValidationError("Request body must be a JSON object")

    # -----------------------
    # Presence
    # -----------------------
    missing = validate_required_fields(payload, REQUIRED_FIELDS)
    if missing:
        raise OrderValidationError(f"Missing required field: {missing[0]}")

    if not isinstance(payload["order"], dict):
        raise OrderValidationError("Invalid order: expected an object")

    # -----------------------
    # Terms
    # -----------------------
    try:
        terms = OrderTermsModel.model_validate(payload["order"]).to_terms()
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise OrderValidationError(f"Invalid order.{field}: {first['msg']}")

    if terms.maker_asset == terms.taker_asset:
        raise OrderValidationError(
            "makerAsset and takerAsset must differ", code=ErrorCode.INVALID_TOKEN_PAIR
        )
    if terms.making_amount == 0 or terms.taking_amount == 0:
        raise OrderValidationError(
            "makingAmount and takingAmount must be positive", code=ErrorCode.INVALID_AMOUNT
        )

    # -----------------------
    # Encodings
    # -----------------------
    order_hash = _require_hex(payload, "orderHash", _HASH_RE)
    maker_signature = _require_hex(payload, "orderSignature")
    extension_calldata = _require_hex(payload, "extensionCalldata")
    extension_signature = _require_hex(payload, "extensionSignature")
    extension_hash = ""
    if payload.get("extensionHash"):
        extension_hash = _require_hex(payload, "extensionHash", _HASH_RE)

    # -----------------------
    # Allowed sender
    # -----------------------
    if allowed_sender and not maker_traits_allow_sender(terms.maker_traits, allowed_sender):
        raise OrderValidationError(
            "makerTraits does not restrict the allowed sender to this relayer"
        )

    return ValidatedSubmission(
        order_hash=order_hash,
        extension_hash=extension_hash,
        terms=terms,
        maker_signature=maker_signature,
        extension_calldata=extension_calldata,
        extension_signature=extension_signature,
    )
