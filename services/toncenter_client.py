"""Chain-access client over a toncenter-compatible JSON-RPC API."""

import asyncio
import base64
from typing import Any, AsyncIterator, Dict, List, Optional
import aiohttp
import structlog
from pytoniq_core import Address, Cell, begin_cell

from config.settings import Settings
from models.transaction import AccountState, InboundMessage, OutboundMessage, Transaction
from utils.addresses import friendly, parse_address
from utils.exceptions import NetworkError
from .base_chain import BaseChainClient, GetMethodResult

logger = structlog.get_logger()


def _cell_from_b64(data: str) -> Cell:
    return Cell.one_from_boc(base64.b64decode(data))


def _parse_stack_entry(entry: Any) -> Any:
    """Convert one toncenter stack entry into int, Cell or raw value."""
    if not isinstance(entry, (list, tuple)) or len(entry) != 2:
        return entry

    kind, value = entry
    if kind == "num":
        return int(value, 16) if isinstance(value, str) else int(value)
    if kind in ("cell", "slice", "tvm.Cell", "tvm.Slice"):
        if isinstance(value, dict):
            value = value.get("bytes", "")
        return _cell_from_b64(value)
    return value


def _parse_message_body(msg: Dict[str, Any]) -> Cell:
    msg_data = msg.get("msg_data") or {}
    body = msg_data.get("body")
    if not body:
        return begin_cell().end_cell()
    return _cell_from_b64(body)


def _parse_optional_address(value: Optional[str]) -> Optional[Address]:
    if not value:
        return None
    return parse_address(value)


def parse_transaction(raw: Dict[str, Any]) -> Transaction:
    """Build a Transaction from a toncenter ``getTransactions`` item."""
    tx_id = raw["transaction_id"]

    in_msg = None
    raw_in = raw.get("in_msg")
    if raw_in:
        in_msg = InboundMessage(
            source=_parse_optional_address(raw_in.get("source")),
            body=_parse_message_body(raw_in),
        )

    out_msgs = [
        OutboundMessage(
            destination=_parse_optional_address(out.get("destination")),
            body=_parse_message_body(out),
        )
        for out in raw.get("out_msgs") or []
    ]

    return Transaction(
        hash=base64.b64decode(tx_id["hash"]),
        lt=int(tx_id["lt"]),
        now=int(raw.get("utime", 0)),
        in_msg=in_msg,
        out_msgs=out_msgs,
    )


class TonCenterClient(BaseChainClient):
    """toncenter v2 JSON-RPC client with round robin and backup failover."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.session: Optional[aiohttp.ClientSession] = None
        self.current_rpc_index = 0

    async def connect(self) -> None:
        """Open the HTTP session and check the API answers."""
        headers = {"Content-Type": "application/json"}
        if self.settings.toncenter_api_key:
            headers["X-API-Key"] = self.settings.toncenter_api_key

        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.rpc_timeout),
            headers=headers,
        )

        seqno = await self.get_masterchain_seqno()
        logger.info("Connected to TON",
                   rpc_urls=len(self.settings.toncenter_urls),
                   backup_urls=len(self.settings.toncenter_backup_urls),
                   masterchain_seqno=seqno)

    async def disconnect(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None
        logger.info("Disconnected from TON")

    def get_next_primary_rpc_url(self) -> str:
        """Get next RPC URL using round robin from primary urls."""
        urls = self.settings.toncenter_urls
        url = urls[self.current_rpc_index % len(urls)]
        self.current_rpc_index = (self.current_rpc_index + 1) % len(urls)
        return url

    async def _make_rpc_call(self, method: str, params: Dict[str, Any]) -> Any:
        """Make async RPC call with failover support."""
        if not self.session:
            raise NetworkError("Session not initialized")

        primary_attempts = min(len(self.settings.toncenter_urls) * 2, self.settings.rpc_max_retries * 2)
        rpc_urls = [self.get_next_primary_rpc_url() for _ in range(max(primary_attempts, 1))]
        rpc_urls.extend(self.settings.toncenter_backup_urls)

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1
        }

        last_error = None
        for i, rpc_url in enumerate(rpc_urls):
            rpc_type = "primary" if i < primary_attempts else "backup"
            try:
                async with self.session.post(rpc_url, json=payload) as response:
                    if response.status != 200:
                        raise NetworkError(f"HTTP {response.status}: {await response.text()}")

                    data = await response.json(content_type=None)
                    if not data.get("ok", True) or "error" in data:
                        raise NetworkError(f"RPC error: {data.get('error')}")

                    if i > 0:
                        logger.info("RPC call succeeded",
                                  method=method,
                                  rpc_type=rpc_type,
                                  attempt=i + 1)
                    return data.get("result")

            except (aiohttp.ClientError, asyncio.TimeoutError, NetworkError, ValueError) as e:
                last_error = e
                logger.warning("RPC call failed, trying next URL",
                             method=method,
                             rpc_type=rpc_type,
                             error=str(e),
                             attempt=i + 1,
                             remaining_rpcs=len(rpc_urls) - i - 1)
                if i < len(rpc_urls) - 1:
                    await asyncio.sleep(self.settings.rpc_retry_delay * (2 ** min(i, 4)))

        logger.error("All RPC URLs failed",
                    method=method,
                    total_rpcs_tried=len(rpc_urls),
                    last_error=str(last_error))
        raise NetworkError(f"All {len(rpc_urls)} RPC URLs failed. Last error: {last_error}")

    async def get_masterchain_seqno(self) -> int:
        result = await self._make_rpc_call("getMasterchainInfo", {})
        return int(result["last"]["seqno"])

    async def get_account_state(self, address: Address) -> AccountState:
        result = await self._make_rpc_call("getAddressInformation", {"address": friendly(address)})
        last_tx = result.get("last_transaction_id") or {}
        last_hash = last_tx.get("hash")
        return AccountState(
            is_active=result.get("state") == "active",
            last_transaction_lt=int(last_tx.get("lt", 0)),
            last_transaction_hash=base64.b64decode(last_hash) if last_hash else None,
        )

    async def run_get_method(
        self,
        address: Address,
        method: str,
        seqno: Optional[int] = None
    ) -> GetMethodResult:
        params: Dict[str, Any] = {"address": friendly(address), "method": method, "stack": []}
        if seqno is not None:
            params["seqno"] = seqno

        result = await self._make_rpc_call("runGetMethod", params)
        exit_code = result.get("exit_code", 0)
        if exit_code not in (0, 1):
            raise NetworkError(f"{method} on {friendly(address)} exited with code {exit_code}")

        stack = [_parse_stack_entry(entry) for entry in result.get("stack", [])]
        return GetMethodResult(stack, method)

    async def _get_transactions_page(
        self,
        address: Address,
        lt: Optional[int] = None,
        tx_hash: Optional[bytes] = None
    ) -> List[Transaction]:
        params: Dict[str, Any] = {
            "address": friendly(address),
            "limit": self.settings.transactions_page_size,
        }
        if lt is not None and tx_hash is not None:
            params["lt"] = str(lt)
            params["hash"] = base64.b64encode(tx_hash).decode()
        result = await self._make_rpc_call("getTransactions", params)
        return [parse_transaction(raw) for raw in result or []]

    async def _fetch_newer_than(self, address: Address, last_lt: int) -> List[Transaction]:
        """All transactions with ``lt > last_lt``, oldest first."""
        collected: List[Transaction] = []
        page = await self._get_transactions_page(address)
        seen = set()
        while page:
            fresh = [tx for tx in page if tx.lt > last_lt and tx.lt not in seen]
            collected.extend(fresh)
            seen.update(tx.lt for tx in fresh)
            oldest = page[-1]
            if len(page) < self.settings.transactions_page_size or oldest.lt <= last_lt:
                break
            page = await self._get_transactions_page(address, oldest.lt, oldest.hash)
            if len(page) == 1 and page[0].lt == oldest.lt:
                break
        collected.sort(key=lambda tx: tx.lt)
        return collected

    async def subscribe_transactions(self, address: Address, from_lt: int) -> AsyncIterator[Transaction]:
        last_lt = from_lt
        while True:
            try:
                batch = await self._fetch_newer_than(address, last_lt)
            except Exception as e:
                logger.warning("Transaction poll failed, retrying",
                             address=friendly(address),
                             last_lt=last_lt,
                             error=str(e))
                await asyncio.sleep(self.settings.poll_interval_seconds)
                continue

            for tx in batch:
                last_lt = tx.lt
                yield tx

            if not batch:
                await asyncio.sleep(self.settings.poll_interval_seconds)
