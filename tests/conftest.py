import pytest

from fastapi.testclient import TestClient

from flashfill_relayer.api.http.relayer_app import create_relayer_app
from flashfill_relayer.chain.calldata import borrow_op, build_extension_calldata, deposit_op
from flashfill_relayer.core.config import Config
from flashfill_relayer.persistence.models import OrderRecord, OrderTerms
from flashfill_relayer.persistence.repository import OrderStore
from flashfill_relayer.services.relayer_service import RelayerService

from fake_chain import FakeChainClient

MAKER = "0x" + "11" * 20
RECEIVER = "0x" + "22" * 20
SETTLEMENT = "0x" + "33" * 20
USDC = "0xaf88d065e77c8cc2239327c5edb3a432268e5831"
WETH = "0x82af49447d8a07e3bd95bd0d56f35241523fbab1"
AAVE_POOL = "0x794a61358d6845594f94dc1db02a252b5b4814ad"

MAKING_AMOUNT = 100 * 10**6     # 100 USDC
TAKING_AMOUNT = 10**17          # 0.1 WETH

ORDER_HASH = "0x" + "aa" * 32
MAKER_SIGNATURE = "0x" + "5a" * 65
EXTENSION_SIGNATURE = "0x" + "6b" * 65


def extension_hex():
    data = build_extension_calldata(
        SETTLEMENT,
        MAKER,
        [deposit_op(WETH, AAVE_POOL), borrow_op(USDC, AAVE_POOL)],
    )
    return "0x" + data.hex()


def make_terms(**overrides):
    values = dict(
        salt=42,
        maker=MAKER,
        receiver=RECEIVER,
        maker_asset=USDC,
        taker_asset=WETH,
        making_amount=MAKING_AMOUNT,
        taking_amount=TAKING_AMOUNT,
        maker_traits=0,
    )
    values.update(overrides)
    return OrderTerms(**values)


def make_record(order_id="order_1_abc", created_at=1, **overrides):
    values = dict(
        id=order_id,
        order_hash=ORDER_HASH,
        extension_hash="",
        terms=make_terms(),
        maker_signature=MAKER_SIGNATURE,
        extension_calldata=extension_hex(),
        extension_signature=EXTENSION_SIGNATURE,
        created_at=created_at,
    )
    values.update(overrides)
    return OrderRecord(**values)


def make_payload(**order_overrides):
    order = {
        "salt": "42",
        "maker": MAKER,
        "receiver": RECEIVER,
        "makerAsset": USDC,
        "takerAsset": WETH,
        "makingAmount": str(MAKING_AMOUNT),
        "takingAmount": str(TAKING_AMOUNT),
        "makerTraits": "0",
    }
    order.update(order_overrides)
    return {
        "orderHash": ORDER_HASH,
        "order": order,
        "orderSignature": MAKER_SIGNATURE,
        "extensionCalldata": extension_hex(),
        "extensionSignature": EXTENSION_SIGNATURE,
    }


class FakeSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


# -------------------------------
# Fixtures
# -------------------------------

@pytest.fixture
def store(tmp_path):
    return OrderStore(tmp_path / "orders.db")


@pytest.fixture
def chain():
    return FakeChainClient()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def config_overrides(tmp_path):
    return {
        "APP_ENV": "test",
        "RELAYER_DB_PATH": str(tmp_path / "orders.db"),
        "MARGIN_SETTLER_ADDRESS": SETTLEMENT,
        "RELAYER_ADDRESS": "",
        "CRON_SECRET": "",
        "BATCH_DELAY_SECONDS": "2",
        "FILL_DELAY_SECONDS": "1",
        "LOG_DIR": str(tmp_path / "logs"),
    }


@pytest.fixture
def config(config_overrides):
    return Config(overrides=config_overrides)


@pytest.fixture
def service(config, store, chain, fake_sleep):
    svc = RelayerService(config, store=store, chain_client=chain, sleep=fake_sleep)
    yield svc
    svc.stop()


@pytest.fixture
def api(service):
    return TestClient(create_relayer_app(service))
