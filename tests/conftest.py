"""
Shared pytest configuration and fixtures for the swap watcher tests.

Message bodies are real TON cells built with pytoniq-core, the chain is a
scripted in-memory client.
"""

from collections import Counter
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from pytoniq_core import Address, Cell, begin_cell

from config.settings import Settings
from models.jetton import JettonData, OnChainContent, WalletData
from models.pool import PoolData
from models.transaction import AccountState, InboundMessage, OutboundMessage, Transaction
from services.base_chain import BaseChainClient, GetMethodResult
from services.metadata_client import MetadataClient
from services.parsers.stonfi_parser import OP_JETTON_NOTIFY, OP_STONFI_SWAP, OP_SWAP_INTENT
from utils.addresses import address_key
from utils.exceptions import NetworkError

# ---------------------------------------------------------------------------
# Sample accounts
# ---------------------------------------------------------------------------


def make_address(byte: int) -> Address:
    """Deterministic basechain address filled with one byte."""
    return Address(f"0:{byte:02x}" + f"{byte:02x}" * 31)


ROUTER = make_address(0x10)
ANCHOR_POOL = make_address(0x20)
POOL = make_address(0x30)

TRADER = make_address(0x40)
ROUTER_AAA_WALLET = make_address(0x41)   # router's AAA wallet, notifies the router
ROUTER_USDT_WALLET = make_address(0x42)  # router's jUSDT wallet, requested output

AAA_MASTER = make_address(0x51)
USDT_MASTER = make_address(0x52)
PTON_MASTER = make_address(0x53)

ANCHOR_USDT_WALLET = make_address(0x61)
ANCHOR_PTON_WALLET = make_address(0x62)


# ---------------------------------------------------------------------------
# Cell builders
# ---------------------------------------------------------------------------


def swap_intent_payload(
    token_wallet: Address,
    min_out: int,
    to_address: Address,
    op: int = OP_SWAP_INTENT
) -> Cell:
    return (
        begin_cell()
        .store_uint(op, 32)
        .store_address(token_wallet)
        .store_coins(min_out)
        .store_address(to_address)
        .store_uint(0, 1)
        .end_cell()
    )


def notify_body(
    query_id: int,
    amount: int,
    sender: Address,
    payload: Cell,
    op: int = OP_JETTON_NOTIFY
) -> Cell:
    return (
        begin_cell()
        .store_uint(op, 32)
        .store_uint(query_id, 64)
        .store_coins(amount)
        .store_address(sender)
        .store_ref(payload)
        .end_cell()
    )


def swap_body(query_id: int, to_address: Address, sender: Address, op: int = OP_STONFI_SWAP) -> Cell:
    return (
        begin_cell()
        .store_uint(op, 32)
        .store_uint(query_id, 64)
        .store_address(to_address)
        .store_address(sender)
        .end_cell()
    )


def make_swap_tx(
    lt: int,
    amount: int = 5 * 10**9,
    min_out: int = 4 * 10**6,
    pool: Address = POOL,
    in_op: int = OP_JETTON_NOTIFY,
    out_op: int = OP_STONFI_SWAP,
    intent_op: int = OP_SWAP_INTENT,
    out_count: int = 1
) -> Transaction:
    """Router transaction: AAA wallet notifies a swap of AAA into jUSDT."""
    payload = swap_intent_payload(ROUTER_USDT_WALLET, min_out, TRADER, op=intent_op)
    in_msg = InboundMessage(
        source=ROUTER_AAA_WALLET,
        body=notify_body(lt, amount, TRADER, payload, op=in_op),
    )
    out_msgs = [
        OutboundMessage(destination=pool, body=swap_body(lt, TRADER, TRADER, op=out_op))
        for _ in range(out_count)
    ]
    return Transaction(
        hash=lt.to_bytes(32, "big"),
        lt=lt,
        now=1_700_000_000 + lt,
        in_msg=in_msg,
        out_msgs=out_msgs,
    )


def address_cell(address: Optional[Address]) -> Cell:
    return begin_cell().store_address(address).end_cell()


# ---------------------------------------------------------------------------
# Scripted chain client
# ---------------------------------------------------------------------------


def onchain_jetton(symbol: str, name: str, decimals: int, total_supply: int) -> JettonData:
    return JettonData(
        total_supply=total_supply,
        mintable=True,
        admin_address=None,
        content=OnChainContent(attributes={
            "symbol": symbol,
            "name": name,
            "decimals": str(decimals),
        }),
    )


def pool_data(reserve0: int, reserve1: int, token0: Address, token1: Address) -> PoolData:
    return PoolData(
        reserve0=reserve0,
        reserve1=reserve1,
        token0_address=token0,
        token1_address=token1,
        lp_fee=20,
        protocol_fee=10,
        ref_fee=10,
        reserved=0,
        collected_token0_protocol_fee=0,
        collected_token1_protocol_fee=0,
    )


class FakeChainClient(BaseChainClient):
    """In-memory chain: wallets, masters and pools keyed by raw address."""

    def __init__(self, transactions: Optional[List[Transaction]] = None):
        self.wallets: Dict[str, Address] = {}
        self.masters: Dict[str, JettonData] = {}
        self.pools: Dict[str, PoolData] = {}
        self.stacks: Dict[str, GetMethodResult] = {}
        self.transactions = transactions or []
        self.account = AccountState(is_active=True, last_transaction_lt=0)
        self.calls: Counter = Counter()
        self.connected = False
        self.fail_connect = False

    def add_wallet(self, wallet: Address, master: Address) -> None:
        self.wallets[address_key(wallet)] = master

    def add_master(self, master: Address, data: JettonData) -> None:
        self.masters[address_key(master)] = data

    def add_pool(self, pool: Address, data: PoolData) -> None:
        self.pools[address_key(pool)] = data

    async def connect(self) -> None:
        if self.fail_connect:
            raise NetworkError("connection refused")
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def get_masterchain_seqno(self) -> int:
        return 42

    async def get_account_state(self, address: Address) -> AccountState:
        return self.account

    async def run_get_method(self, address: Address, method: str, seqno: Optional[int] = None) -> GetMethodResult:
        self.calls[method] += 1
        result = self.stacks.get(f"{address_key(address)}:{method}")
        if result is None:
            raise NetworkError(f"{method} not scripted")
        return result

    async def subscribe_transactions(self, address: Address, from_lt: int):
        for tx in self.transactions:
            if tx.lt > from_lt:
                yield tx

    async def get_wallet_data(self, wallet: Address) -> WalletData:
        self.calls["get_wallet_data"] += 1
        master = self.wallets.get(address_key(wallet))
        if master is None:
            raise NetworkError("wallet not found")
        return WalletData(balance=0, owner=ROUTER, master=master)

    async def get_jetton_data(self, master: Address) -> JettonData:
        self.calls["get_jetton_data"] += 1
        data = self.masters.get(address_key(master))
        if data is None:
            raise NetworkError("jetton master not found")
        return data

    async def get_pool_data(self, pool: Address) -> PoolData:
        self.calls["get_pool_data"] += 1
        data = self.pools.get(address_key(pool))
        if data is None:
            raise NetworkError("pool not found")
        return data


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        dex_address=ROUTER.to_str(),
        anchor_pool_address=ANCHOR_POOL.to_str(),
        metadata_max_retries=1,
        anchor_refresh_interval_seconds=3600,
        throughput_report_interval_seconds=3600,
    )


@pytest.fixture
def chain() -> FakeChainClient:
    """
    Chain with the jUSDT/pTON anchor and an AAA/jUSDT pool.

    AAA (9 decimals) trades at 0.5 jUSDT: 1,000,000 jUSDT against
    2,000,000 AAA. pTON trades at 2 jUSDT: 1,000,000 jUSDT against
    500,000 pTON.
    """
    client = FakeChainClient()

    client.add_master(AAA_MASTER, onchain_jetton("AAA", "Triple A", 9, 10**9 * 10**9))
    client.add_master(USDT_MASTER, onchain_jetton("jUSDT", "Tether USD", 6, 10**15))
    client.add_master(PTON_MASTER, onchain_jetton("pTON", "Proxy TON", 9, 0))
    client.add_master(POOL, onchain_jetton("AAA-jUSDT LP", "STON.fi AAA-jUSDT LP", 9, 10**12))
    client.add_master(ANCHOR_POOL, onchain_jetton("jUSDT-pTON LP", "STON.fi jUSDT-pTON LP", 9, 10**12))

    client.add_wallet(ROUTER_AAA_WALLET, AAA_MASTER)
    client.add_wallet(ROUTER_USDT_WALLET, USDT_MASTER)
    client.add_wallet(ANCHOR_USDT_WALLET, USDT_MASTER)
    client.add_wallet(ANCHOR_PTON_WALLET, PTON_MASTER)

    client.add_pool(POOL, pool_data(2_000_000 * 10**9, 1_000_000 * 10**6, ROUTER_AAA_WALLET, ROUTER_USDT_WALLET))
    client.add_pool(ANCHOR_POOL, pool_data(1_000_000 * 10**6, 500_000 * 10**9, ANCHOR_USDT_WALLET, ANCHOR_PTON_WALLET))
    return client


@pytest_asyncio.fixture
async def metadata(settings):
    client = MetadataClient(settings)
    yield client
    await client.disconnect()
