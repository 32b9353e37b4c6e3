#!/usr/bin/env python3
"""
Calldata Assembly
=================

Byte layouts consumed by the settlement contract's decoder.
Field order, widths and concatenation order are an external contract:
any drift makes flashLoanFill revert on chain.

    extension   = settlement(20) | maker(20) | op...
    deposit op  = tag(1) | subOp(1) | lenderId(2) | asset(20) | pool(20)
    borrow op   = deposit layout | interestRateMode(1)
    swap        = router(20) | exactInputSingle selector(4) | abi(params)
    takerTraits = abi(uint256 extOffset, extLen, swapOffset, swapLen)
    params      = filler(20) | abi(orderTuple, bytes, uint256, bytes, bytes, bytes)

All lengths are byte lengths.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from eth_abi import decode, encode
from eth_utils import (
    function_signature_to_4byte_selector,
    is_address,
    to_bytes,
    to_checksum_address,
)

from flashfill_relayer.core.errors import BuildFailure
from flashfill_relayer.persistence.models import OrderRecord, OrderTerms

logger = logging.getLogger(__name__)

HexOrBytes = Union[str, bytes]

# ----------------------------------------------------------------------
# Protocol constants
# ----------------------------------------------------------------------
UNISWAP_V3_ROUTER = "0xE592427A0AEce92De3Edee1F18E0157C05861564"
DEFAULT_FEE_TIER = 3000
DEFAULT_DEADLINE_SECONDS = 1800

EXACT_INPUT_SINGLE_SIGNATURE = (
    "exactInputSingle((address,address,uint24,address,uint256,uint256,uint256,uint160))"
)
EXACT_INPUT_SINGLE_SELECTOR = function_signature_to_4byte_selector(
    EXACT_INPUT_SINGLE_SIGNATURE
)
EXACT_INPUT_SINGLE_TYPES = ["(address,address,uint24,address,uint256,uint256,uint256,uint160)"]

ORDER_TUPLE_TYPE = "(uint256,address,address,address,address,uint256,uint256,uint256)"
FILL_PARAMS_TYPES = [ORDER_TUPLE_TYPE, "bytes", "uint256", "bytes", "bytes", "bytes"]
TAKER_TRAITS_TYPES = ["uint256", "uint256", "uint256", "uint256"]

TAG_LENDING = 0x01
SUBOP_DEPOSIT = 0x00
SUBOP_BORROW = 0x01
LENDER_AAVE_V3 = 0
INTEREST_RATE_VARIABLE = 2

ADDRESS_LENGTH = 20
DEPOSIT_OP_LENGTH = 1 + 1 + 2 + ADDRESS_LENGTH + ADDRESS_LENGTH
BORROW_OP_LENGTH = DEPOSIT_OP_LENGTH + 1
EXTENSION_HEADER_LENGTH = ADDRESS_LENGTH * 2


# ----------------------------------------------------------------------
# Small byte helpers
# ----------------------------------------------------------------------
def as_bytes(value: HexOrBytes) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str) or not value.startswith("0x"):
        raise BuildFailure(f"Expected 0x-prefixed hex, got: {value!r}")
    try:
        return to_bytes(hexstr=value)
    except ValueError as e:
        raise BuildFailure(f"Invalid hex value: {e}")


def address_bytes(address: str) -> bytes:
    if not is_address(address):
        raise BuildFailure(f"Invalid address: {address}")
    return to_bytes(hexstr=to_checksum_address(address))


def _read_address(data: bytes, offset: int) -> str:
    return to_checksum_address(data[offset:offset + ADDRESS_LENGTH])


# ----------------------------------------------------------------------
# Extension calldata
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class LendingOp:
    sub_op: int
    lender_id: int
    asset: str
    pool: str
    interest_rate_mode: Optional[int] = None

    @property
    def is_borrow(self) -> bool:
        return self.sub_op == SUBOP_BORROW


@dataclass(frozen=True)
class ExtensionPayload:
    settlement: str
    maker: str
    ops: Tuple[LendingOp, ...] = ()


def deposit_op(asset: str, pool: str, lender_id: int = LENDER_AAVE_V3) -> bytes:
    return (
        bytes([TAG_LENDING, SUBOP_DEPOSIT])
        + lender_id.to_bytes(2, "big")
        + address_bytes(asset)
        + address_bytes(pool)
    )


def borrow_op(
    asset: str,
    pool: str,
    lender_id: int = LENDER_AAVE_V3,
    interest_rate_mode: int = INTEREST_RATE_VARIABLE,
) -> bytes:
    return (
        bytes([TAG_LENDING, SUBOP_BORROW])
        + lender_id.to_bytes(2, "big")
        + address_bytes(asset)
        + address_bytes(pool)
        + bytes([interest_rate_mode])
    )


def build_extension_calldata(settlement: str, maker: str, ops: List[bytes]) -> bytes:
    """settlement(20) | maker(20) | ops in the order given"""
    return address_bytes(settlement) + address_bytes(maker) + b"".join(ops)


def parse_extension_calldata(data: HexOrBytes) -> ExtensionPayload:
    """
    Inverse of build_extension_calldata.

    Raises BuildFailure on truncation or an unknown tag / sub-op so a
    malformed extension never reaches the chain.
    """
    raw = as_bytes(data)
    if len(raw) < EXTENSION_HEADER_LENGTH:
        raise BuildFailure(
            f"Extension calldata too short: {len(raw)} bytes, "
            f"header needs {EXTENSION_HEADER_LENGTH}"
        )

    settlement = _read_address(raw, 0)
    maker = _read_address(raw, ADDRESS_LENGTH)

    ops: List[LendingOp] = []
    offset = EXTENSION_HEADER_LENGTH
    while offset < len(raw):
        tag = raw[offset]
        if tag != TAG_LENDING:
            raise BuildFailure(f"Unknown extension op tag 0x{tag:02x} at byte {offset}")
        if offset + 2 > len(raw):
            raise BuildFailure(f"Truncated extension op at byte {offset}")

        sub_op = raw[offset + 1]
        if sub_op == SUBOP_DEPOSIT:
            size = DEPOSIT_OP_LENGTH
        elif sub_op == SUBOP_BORROW:
            size = BORROW_OP_LENGTH
        else:
            raise BuildFailure(f"Unknown lending sub-op 0x{sub_op:02x} at byte {offset}")

        if offset + size > len(raw):
            raise BuildFailure(
                f"Truncated lending op at byte {offset}: need {size}, "
                f"have {len(raw) - offset}"
            )

        body = raw[offset:offset + size]
        ops.append(
            LendingOp(
                sub_op=sub_op,
                lender_id=int.from_bytes(body[2:4], "big"),
                asset=_read_address(body, 4),
                pool=_read_address(body, 4 + ADDRESS_LENGTH),
                interest_rate_mode=body[-1] if sub_op == SUBOP_BORROW else None,
            )
        )
        offset += size

    return ExtensionPayload(settlement=settlement, maker=maker, ops=tuple(ops))


# ----------------------------------------------------------------------
# Swap routing
# ----------------------------------------------------------------------
def build_swap_calldata(
    token_in: str,
    token_out: str,
    amount_in: int,
    recipient: str,
    deadline: int,
    fee: int = DEFAULT_FEE_TIER,
    router: str = UNISWAP_V3_ROUTER,
) -> bytes:
    """router(20) | exactInputSingle(tokenIn, tokenOut, fee, recipient, deadline, amountIn, 0, 0)"""
    call = EXACT_INPUT_SINGLE_SELECTOR + encode(
        EXACT_INPUT_SINGLE_TYPES,
        [(
            to_checksum_address(token_in),
            to_checksum_address(token_out),
            fee,
            to_checksum_address(recipient),
            deadline,
            amount_in,
            0,  # amountOutMinimum
            0,  # sqrtPriceLimitX96
        )],
    )
    return address_bytes(router) + call


# ----------------------------------------------------------------------
# Taker traits
# ----------------------------------------------------------------------
def encode_taker_traits(extension_length: int, swap_length: int) -> bytes:
    return encode(
        TAKER_TRAITS_TYPES,
        [0, extension_length, extension_length, swap_length],
    )


def decode_taker_traits(data: HexOrBytes) -> Tuple[int, int, int, int]:
    """-> (extension_offset, extension_length, swap_offset, swap_length)"""
    return tuple(decode(TAKER_TRAITS_TYPES, as_bytes(data)))


# ----------------------------------------------------------------------
# Final fill params
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class FillParams:
    filler: str
    terms: OrderTerms
    maker_signature: bytes
    taking_amount: int
    taker_traits: bytes
    combined: bytes
    extension_signature: bytes


def encode_fill_params(
    filler: str,
    terms: OrderTerms,
    maker_signature: HexOrBytes,
    taking_amount: int,
    taker_traits: HexOrBytes,
    combined: HexOrBytes,
    extension_signature: HexOrBytes,
) -> bytes:
    body = encode(
        FILL_PARAMS_TYPES,
        [
            terms.as_tuple(),
            as_bytes(maker_signature),
            taking_amount,
            as_bytes(taker_traits),
            as_bytes(combined),
            as_bytes(extension_signature),
        ],
    )
    return address_bytes(filler) + body


def decode_fill_params(payload: HexOrBytes) -> FillParams:
    raw = as_bytes(payload)
    if len(raw) <= ADDRESS_LENGTH:
        raise BuildFailure("Fill params too short")

    order_tuple, maker_sig, taking_amount, taker_traits, combined, ext_sig = decode(
        FILL_PARAMS_TYPES, raw[ADDRESS_LENGTH:]
    )
    salt, maker, receiver, maker_asset, taker_asset, making, taking, traits = order_tuple

    return FillParams(
        filler=_read_address(raw, 0),
        terms=OrderTerms(
            salt=salt,
            maker=to_checksum_address(maker),
            receiver=to_checksum_address(receiver),
            maker_asset=to_checksum_address(maker_asset),
            taker_asset=to_checksum_address(taker_asset),
            making_amount=making,
            taking_amount=taking,
            maker_traits=traits,
        ),
        maker_signature=maker_sig,
        taking_amount=taking_amount,
        taker_traits=taker_traits,
        combined=combined,
        extension_signature=ext_sig,
    )


# ----------------------------------------------------------------------
# Assembler
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class FillCalldata:
    settlement: str
    asset: str
    amount: int
    extension: ExtensionPayload
    swap_calldata: bytes
    taker_traits: bytes
    combined: bytes
    params: bytes = field(repr=False)


class CalldataAssembler:
    """
    Builds everything one flashLoanFill needs from an order's own fields.
    No external amount recomputation.
    """

    def __init__(
        self,
        settlement_address: Optional[str] = None,
        router: str = UNISWAP_V3_ROUTER,
        fee: int = DEFAULT_FEE_TIER,
        deadline_seconds: int = DEFAULT_DEADLINE_SECONDS,
    ):
        self.settlement_address = settlement_address
        self.router = router
        self.fee = fee
        self.deadline_seconds = deadline_seconds

    def settlement_for(self, order: OrderRecord) -> str:
        return self.settlement_address or to_checksum_address(order.terms.receiver)

    def build(self, order: OrderRecord, filler: str, now: int) -> FillCalldata:
        """
        now: unix seconds, swap deadline = now + deadline_seconds
        """
        terms = order.terms
        extension_bytes = as_bytes(order.extension_calldata)
        extension = parse_extension_calldata(extension_bytes)

        swap_calldata = build_swap_calldata(
            token_in=terms.taker_asset,
            token_out=terms.maker_asset,
            amount_in=terms.taking_amount,
            recipient=filler,
            deadline=now + self.deadline_seconds,
            fee=self.fee,
            router=self.router,
        )
        taker_traits = encode_taker_traits(len(extension_bytes), len(swap_calldata))
        combined = extension_bytes + swap_calldata

        params = encode_fill_params(
            filler=filler,
            terms=terms,
            maker_signature=order.maker_signature,
            taking_amount=terms.taking_amount,
            taker_traits=taker_traits,
            combined=combined,
            extension_signature=order.extension_signature,
        )

        logger.debug(
            "CALLDATA_BUILT | order_id=%s | ext=%d | swap=%d | params=%d",
            order.id, len(extension_bytes), len(swap_calldata), len(params),
        )

        return FillCalldata(
            settlement=self.settlement_for(order),
            asset=to_checksum_address(terms.maker_asset),
            amount=terms.making_amount,
            extension=extension,
            swap_calldata=swap_calldata,
            taker_traits=taker_traits,
            combined=combined,
            params=params,
        )
