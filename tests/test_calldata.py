import pytest

from eth_abi import decode
from eth_utils import to_bytes, to_checksum_address

from flashfill_relayer.chain.calldata import (
    BORROW_OP_LENGTH,
    DEPOSIT_OP_LENGTH,
    EXACT_INPUT_SINGLE_SELECTOR,
    EXACT_INPUT_SINGLE_TYPES,
    INTEREST_RATE_VARIABLE,
    SUBOP_BORROW,
    SUBOP_DEPOSIT,
    UNISWAP_V3_ROUTER,
    CalldataAssembler,
    borrow_op,
    build_extension_calldata,
    build_swap_calldata,
    decode_fill_params,
    decode_taker_traits,
    deposit_op,
    encode_fill_params,
    encode_taker_traits,
    parse_extension_calldata,
)
from flashfill_relayer.core.errors import BuildFailure

from conftest import (
    AAVE_POOL,
    EXTENSION_SIGNATURE,
    MAKER,
    MAKER_SIGNATURE,
    RECEIVER,
    SETTLEMENT,
    USDC,
    WETH,
    make_record,
    make_terms,
)
from fake_chain import FILLER


# -------------------------------
# Extension
# -------------------------------

def test_op_widths():
    assert len(deposit_op(WETH, AAVE_POOL)) == DEPOSIT_OP_LENGTH == 44
    assert len(borrow_op(USDC, AAVE_POOL)) == BORROW_OP_LENGTH == 45


def test_extension_layout():
    ext = build_extension_calldata(
        SETTLEMENT, MAKER, [deposit_op(WETH, AAVE_POOL), borrow_op(USDC, AAVE_POOL)]
    )

    assert len(ext) == 20 + 20 + 44 + 45
    assert ext[:20] == to_bytes(hexstr=SETTLEMENT)
    assert ext[20:40] == to_bytes(hexstr=MAKER)
    # deposit header: LENDING, DEPOSIT, lender 0
    assert ext[40:44] == bytes([0x01, 0x00, 0x00, 0x00])
    # borrow trailer: variable rate
    assert ext[-1] == INTEREST_RATE_VARIABLE


def test_parse_extension_is_inverse_of_build():
    ext = build_extension_calldata(
        SETTLEMENT, MAKER, [deposit_op(WETH, AAVE_POOL), borrow_op(USDC, AAVE_POOL, lender_id=7)]
    )

    parsed = parse_extension_calldata("0x" + ext.hex())

    assert parsed.settlement == to_checksum_address(SETTLEMENT)
    assert parsed.maker == to_checksum_address(MAKER)
    assert len(parsed.ops) == 2

    deposit, borrow = parsed.ops
    assert deposit.sub_op == SUBOP_DEPOSIT
    assert deposit.asset == to_checksum_address(WETH)
    assert deposit.pool == to_checksum_address(AAVE_POOL)
    assert deposit.interest_rate_mode is None

    assert borrow.sub_op == SUBOP_BORROW
    assert borrow.is_borrow
    assert borrow.lender_id == 7
    assert borrow.asset == to_checksum_address(USDC)
    assert borrow.interest_rate_mode == INTEREST_RATE_VARIABLE


def test_parse_extension_header_only():
    ext = build_extension_calldata(SETTLEMENT, MAKER, [])
    assert parse_extension_calldata(ext).ops == ()


@pytest.mark.parametrize(
    "mutate",
    [
        lambda ext: ext[:30],                      # truncated header
        lambda ext: ext[:-1],                      # truncated borrow op
        lambda ext: ext[:40] + b"\x09" + ext[41:],  # unknown tag
        lambda ext: ext[:41] + b"\x07" + ext[42:],  # unknown sub-op
    ],
)
def test_parse_extension_rejects_malformed(mutate):
    ext = build_extension_calldata(
        SETTLEMENT, MAKER, [deposit_op(WETH, AAVE_POOL), borrow_op(USDC, AAVE_POOL)]
    )
    with pytest.raises(BuildFailure):
        parse_extension_calldata(mutate(ext))


def test_parse_extension_rejects_non_hex():
    with pytest.raises(BuildFailure):
        parse_extension_calldata("not-hex")


# -------------------------------
# Swap routing
# -------------------------------

def test_exact_input_single_selector():
    assert EXACT_INPUT_SINGLE_SELECTOR.hex() == "414bf389"


def test_swap_calldata_layout():
    swap = build_swap_calldata(WETH, USDC, 10**17, FILLER, deadline=1_700_001_800)

    assert len(swap) == 20 + 4 + 8 * 32
    assert swap[:20] == to_bytes(hexstr=UNISWAP_V3_ROUTER)
    assert swap[20:24] == EXACT_INPUT_SINGLE_SELECTOR

    (params,) = decode(EXACT_INPUT_SINGLE_TYPES, swap[24:])
    token_in, token_out, fee, recipient, deadline, amount_in, min_out, price_limit = params
    assert to_checksum_address(token_in) == to_checksum_address(WETH)
    assert to_checksum_address(token_out) == to_checksum_address(USDC)
    assert fee == 3000
    assert to_checksum_address(recipient) == to_checksum_address(FILLER)
    assert deadline == 1_700_001_800
    assert amount_in == 10**17
    assert min_out == 0
    assert price_limit == 0


# -------------------------------
# Taker traits
# -------------------------------

def test_taker_traits_offsets():
    traits = encode_taker_traits(129, 280)

    assert len(traits) == 128
    assert decode_taker_traits(traits) == (0, 129, 129, 280)


# -------------------------------
# Final params
# -------------------------------

def test_fill_params_round_trip():
    terms = make_terms(maker_traits=2**200 + 5, salt=2**255)
    combined = b"\x01" * 129 + b"\x02" * 280
    traits = encode_taker_traits(129, 280)

    payload = encode_fill_params(
        FILLER, terms, MAKER_SIGNATURE, terms.taking_amount, traits, combined, EXTENSION_SIGNATURE
    )
    decoded = decode_fill_params(payload)

    assert payload[:20] == to_bytes(hexstr=FILLER)
    assert decoded.filler == to_checksum_address(FILLER)
    assert decoded.terms.salt == terms.salt
    assert decoded.terms.maker == to_checksum_address(MAKER)
    assert decoded.terms.receiver == to_checksum_address(RECEIVER)
    assert decoded.terms.maker_asset == to_checksum_address(USDC)
    assert decoded.terms.taker_asset == to_checksum_address(WETH)
    assert decoded.terms.making_amount == terms.making_amount
    assert decoded.terms.taking_amount == terms.taking_amount
    assert decoded.terms.maker_traits == terms.maker_traits
    assert decoded.maker_signature == to_bytes(hexstr=MAKER_SIGNATURE)
    assert decoded.taking_amount == terms.taking_amount
    assert decoded.taker_traits == traits
    assert decoded.combined == combined
    assert decoded.extension_signature == to_bytes(hexstr=EXTENSION_SIGNATURE)


def test_terms_tuple_matches_order_struct():
    terms = make_terms()

    assert terms.as_tuple() == (
        terms.salt,
        to_checksum_address(MAKER),
        to_checksum_address(RECEIVER),
        to_checksum_address(USDC),
        to_checksum_address(WETH),
        terms.making_amount,
        terms.taking_amount,
        terms.maker_traits,
    )


def test_assembler_builds_from_order_fields():
    order = make_record()
    assembler = CalldataAssembler(settlement_address=to_checksum_address(SETTLEMENT))

    calldata = assembler.build(order, FILLER, now=1_700_000_000)

    ext = to_bytes(hexstr=order.extension_calldata)
    assert calldata.settlement == to_checksum_address(SETTLEMENT)
    assert calldata.asset == to_checksum_address(USDC)
    assert calldata.amount == order.terms.making_amount
    assert calldata.combined == ext + calldata.swap_calldata

    offset, ext_len, swap_offset, swap_len = decode_taker_traits(calldata.taker_traits)
    assert calldata.combined[offset:offset + ext_len] == ext
    assert calldata.combined[swap_offset:swap_offset + swap_len] == calldata.swap_calldata

    decoded = decode_fill_params(calldata.params)
    assert decoded.taking_amount == order.terms.taking_amount
    assert decoded.combined == calldata.combined

    (swap_params,) = decode(EXACT_INPUT_SINGLE_TYPES, calldata.swap_calldata[24:])
    assert swap_params[4] == 1_700_000_000 + 1800


def test_assembler_falls_back_to_receiver_as_settlement():
    calldata = CalldataAssembler().build(make_record(), FILLER, now=0)
    assert calldata.settlement == to_checksum_address(RECEIVER)


def test_assembler_rejects_malformed_extension():
    order = make_record(extension_calldata="0x" + "01" * 10)
    with pytest.raises(BuildFailure):
        CalldataAssembler().build(order, FILLER, now=0)
