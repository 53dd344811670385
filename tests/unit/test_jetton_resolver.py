"""
Unit tests for services/jetton_resolver.py and services/metadata_client.py.

Chain access is the scripted FakeChainClient, off-chain metadata HTTP is
mocked with aioresponses.
"""

from __future__ import annotations

import asyncio
import json

import pytest
from aioresponses import aioresponses

from models.jetton import JettonData, OffChainContent, SemiChainContent
from services.jetton_resolver import JettonResolver
from services.metadata_client import MetadataClient, parse_decimals, parse_metadata, resolve_uri
from tests.conftest import AAA_MASTER, ROUTER_AAA_WALLET, make_address, onchain_jetton
from utils.addresses import address_key
from utils.exceptions import NetworkError, UnsupportedMetadataKind

METADATA_URI = "https://meta.example.org/jetton.json"
OFFCHAIN_MASTER = make_address(0x71)
OFFCHAIN_WALLET = make_address(0x72)


@pytest.fixture
def resolver(chain, metadata) -> JettonResolver:
    return JettonResolver(chain, metadata)


def _offchain_master(chain, uri: str = METADATA_URI) -> None:
    chain.add_master(OFFCHAIN_MASTER, JettonData(
        total_supply=10**18,
        mintable=False,
        admin_address=None,
        content=OffChainContent(uri=uri),
    ))
    chain.add_wallet(OFFCHAIN_WALLET, OFFCHAIN_MASTER)


class TestMasterCache:

    @pytest.mark.asyncio
    async def test_wallet_data_queried_once_jetton_data_twice(self, chain, resolver):
        first = await resolver.resolve_issuer(ROUTER_AAA_WALLET)
        second = await resolver.resolve_issuer(ROUTER_AAA_WALLET)

        assert address_key(first.address) == address_key(AAA_MASTER)
        assert address_key(second.address) == address_key(first.address)
        assert chain.calls["get_wallet_data"] == 1
        assert chain.calls["get_jetton_data"] == 2
        assert resolver.wallet_data_queries == 1
        assert resolver.jetton_data_queries == 2

    @pytest.mark.asyncio
    async def test_concurrent_misses_converge(self, chain, resolver):
        masters = await asyncio.gather(*[resolver.master_of(ROUTER_AAA_WALLET) for _ in range(5)])

        assert {address_key(m) for m in masters} == {address_key(AAA_MASTER)}
        assert len(resolver) == 1
        assert address_key(resolver.cached_master(ROUTER_AAA_WALLET)) == address_key(AAA_MASTER)

    @pytest.mark.asyncio
    async def test_unknown_wallet_propagates_network_error(self, resolver):
        with pytest.raises(NetworkError):
            await resolver.master_of(make_address(0x99))
        assert len(resolver) == 0


class TestContentKinds:

    @pytest.mark.asyncio
    async def test_onchain_content(self, resolver):
        info = await resolver.resolve_issuer(ROUTER_AAA_WALLET)

        assert info.symbol == "AAA"
        assert info.name == "Triple A"
        assert info.decimals == 9
        assert info.mintable is True
        assert info.offchain_uri is None

    @pytest.mark.asyncio
    async def test_semichain_content_skips_symbol(self, chain, resolver):
        master = make_address(0x73)
        chain.add_master(master, JettonData(
            total_supply=1,
            mintable=True,
            content=SemiChainContent(
                uri=METADATA_URI,
                attributes={"symbol": "SEMI", "name": "Semi", "decimals": "6"},
            ),
        ))

        info = await resolver.describe_master(master)

        assert info.offchain_uri == METADATA_URI
        assert info.name == "Semi"
        assert info.decimals == 6
        assert info.symbol == ""

    @pytest.mark.asyncio
    async def test_unsupported_content_raises(self, chain, resolver):
        master = make_address(0x74)
        # Skip validation to emulate a content variant the resolver does not know
        data = JettonData.model_construct(total_supply=1, mintable=True, admin_address=None, content=object())
        chain.add_master(master, data)

        with pytest.raises(UnsupportedMetadataKind):
            await resolver.describe_master(master)

    @pytest.mark.asyncio
    async def test_offchain_decimals_as_string(self, chain, resolver):
        _offchain_master(chain)
        document = {"symbol": "OFF", "name": "Off chain", "decimals": "9", "image": "https://img"}

        with aioresponses() as mocked:
            mocked.get(METADATA_URI, status=200, body=json.dumps(document))
            info = await resolver.resolve_issuer(OFFCHAIN_WALLET)

        assert info.symbol == "OFF"
        assert info.decimals == 9
        assert info.image == "https://img"
        assert info.offchain_uri == METADATA_URI

    @pytest.mark.asyncio
    async def test_offchain_decimals_as_number(self, chain, resolver):
        _offchain_master(chain)
        document = {"symbol": "OFF", "name": "Off chain", "decimals": 6}

        with aioresponses() as mocked:
            mocked.get(METADATA_URI, status=200, body=json.dumps(document))
            info = await resolver.resolve_issuer(OFFCHAIN_WALLET)

        assert info.decimals == 6

    @pytest.mark.asyncio
    async def test_offchain_fetch_failure_keeps_chain_fields(self, chain, resolver):
        _offchain_master(chain)

        with aioresponses() as mocked:
            mocked.get(METADATA_URI, status=404)
            info = await resolver.resolve_issuer(OFFCHAIN_WALLET)

        assert info.total_supply == 10**18
        assert info.symbol == ""
        assert info.decimals == 0

    @pytest.mark.asyncio
    async def test_onchain_decimals_out_of_range_fall_back_to_zero(self, chain, resolver):
        master = make_address(0x75)
        chain.add_master(master, onchain_jetton("BIG", "Big", 3_000_000, 1))

        info = await resolver.describe_master(master)

        assert info.symbol == "BIG"
        assert info.decimals == 0

    @pytest.mark.asyncio
    async def test_offchain_decimals_out_of_range_fall_back_to_zero(self, chain, resolver):
        _offchain_master(chain)
        document = {"symbol": "OFF", "name": "Off chain", "decimals": 100000}

        with aioresponses() as mocked:
            mocked.get(METADATA_URI, status=200, body=json.dumps(document))
            info = await resolver.resolve_issuer(OFFCHAIN_WALLET)

        assert info.symbol == "OFF"
        assert info.decimals == 0


class TestMetadataClient:

    def test_parse_decimals(self):
        assert parse_decimals(9) == 9
        assert parse_decimals("18") == 18
        assert parse_decimals(" 6 ") == 6
        assert parse_decimals("nine") == 0
        assert parse_decimals(None) == 0
        assert parse_decimals(True) == 0

    def test_parse_decimals_bounds(self):
        assert parse_decimals(0) == 0
        assert parse_decimals(255) == 255
        assert parse_decimals("255") == 255
        assert parse_decimals(256) == 0
        assert parse_decimals(-1) == 0
        assert parse_decimals("3000000") == 0
        assert parse_decimals(1e300) == 0

    def test_parse_metadata_rejects_invalid_json(self):
        with pytest.raises(NetworkError):
            parse_metadata(b"<html>")

    def test_parse_metadata_rejects_non_object(self):
        with pytest.raises(NetworkError):
            parse_metadata(b"[1, 2]")

    def test_parse_metadata_ignores_non_string_fields(self):
        metadata = parse_metadata(json.dumps({"symbol": 5, "name": "N"}).encode())
        assert metadata.symbol == ""
        assert metadata.name == "N"

    def test_resolve_ipfs_uri(self):
        assert resolve_uri("ipfs://QmHash/meta.json") == "https://ipfs.io/ipfs/QmHash/meta.json"
        assert resolve_uri(METADATA_URI) == METADATA_URI

    @pytest.mark.asyncio
    async def test_body_cached_per_uri(self, settings):
        client = MetadataClient(settings)
        await client.connect()
        try:
            with aioresponses() as mocked:
                mocked.get(METADATA_URI, status=200, body=json.dumps({"symbol": "A"}))
                first = await client.fetch(METADATA_URI)
                second = await client.fetch(METADATA_URI)

            assert first.symbol == second.symbol == "A"
            assert client.cached(METADATA_URI)
        finally:
            await client.disconnect()

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, settings):
        client = MetadataClient(settings.model_copy(update={"metadata_max_retries": 2}))
        await client.connect()
        try:
            with aioresponses() as mocked:
                mocked.get(METADATA_URI, status=503)
                mocked.get(METADATA_URI, status=200, body=json.dumps({"symbol": "B"}))
                metadata = await client.fetch(METADATA_URI)

            assert metadata.symbol == "B"
        finally:
            await client.disconnect()

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, settings):
        client = MetadataClient(settings.model_copy(update={"metadata_max_retries": 3}))
        await client.connect()
        try:
            with aioresponses() as mocked:
                mocked.get(METADATA_URI, status=404)
                with pytest.raises(NetworkError):
                    await client.fetch(METADATA_URI)

            assert not client.cached(METADATA_URI)
        finally:
            await client.disconnect()
