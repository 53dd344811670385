"""STON.fi v1 router swap parser."""

import zlib
import structlog

from models.transaction import Transaction
from utils.exceptions import ProtocolDecodeError
from .base_parser import BaseSwapParser, DecodedSwap, load_address, load_op, read_field

logger = structlog.get_logger()


# transfer_notification from the jetton wallet to the router
OP_JETTON_NOTIFY = 0x7362D09C
# router -> pool swap
OP_STONFI_SWAP = 0x25938561
# forward payload op of a swap request: crc32("swap")
OP_SWAP_INTENT = zlib.crc32(b"swap")


class StonfiSwapParser(BaseSwapParser):
    """
    Recognise ``jetton_notify`` in / ``swap`` out router transactions.

    Inbound payload::

        op:uint32 query_id:uint64 amount:Coins sender:MsgAddress
        ^[ op:uint32 token_wallet1:MsgAddress min_out:Coins
           to_address:MsgAddress has_ref:uint1 ... ]

    Outbound payload::

        op:uint32 query_id:uint64 to_address:MsgAddress sender:MsgAddress ...
    """

    def get_protocol(self) -> str:
        return "stonfi_v1"

    def accepts(self, tx: Transaction) -> bool:
        tx_hash = tx.hash_b64

        if tx.in_msg is None:
            logger.debug("Transaction has no inbound message", tx=tx_hash)
            return False

        if len(tx.out_msgs) != 1:
            logger.debug("Transaction out message count is not 1", tx=tx_hash, out_msgs=len(tx.out_msgs))
            return False

        try:
            in_op = load_op(tx.in_msg.body.begin_parse(), "in op")
            out_op = load_op(tx.out_msgs[0].body.begin_parse(), "out op")
        except ProtocolDecodeError as e:
            logger.debug("Failed to load op", tx=tx_hash, error=str(e))
            return False

        if in_op != OP_JETTON_NOTIFY or out_op != OP_STONFI_SWAP:
            logger.debug("Transaction op is not jetton notify or stonfi swap, skip",
                        tx=tx_hash,
                        in_op=f"{in_op:X}",
                        out_op=f"{out_op:X}")
            return False

        return True

    def decode(self, tx: Transaction) -> DecodedSwap:
        """Decode an accepted transaction. Call ``accepts`` first."""
        if tx.in_msg is None or len(tx.out_msgs) != 1:
            raise ProtocolDecodeError("messages", "expected one inbound and one outbound message")

        ins = tx.in_msg.body.begin_parse()
        outs = tx.out_msgs[0].body.begin_parse()

        load_op(ins, "in op")
        query_id = read_field("query id", lambda: ins.load_uint(64))
        amount_in = read_field("amount", ins.load_coins)
        src_wallet = load_address(ins, "sender")

        ref = read_field("forward payload", lambda: ins.load_ref().begin_parse())
        intent_op = load_op(ref, "swap op")
        if intent_op != OP_SWAP_INTENT:
            raise ProtocolDecodeError("swap op", f"transfer op 0x{intent_op:X} is not swap")

        dst_jetton = load_address(ref, "token wallet")
        min_amount_out = read_field("min out", ref.load_coins)
        to_address = load_address(ref, "to address")
        has_ref = read_field("has ref", lambda: ref.load_uint(1))

        load_op(outs, "out op")
        out_query_id = read_field("out query id", lambda: outs.load_uint(64))
        out_to_address = load_address(outs, "out to address")
        out_sender_address = load_address(outs, "out sender address")

        logger.debug("Decoded swap payloads",
                    tx=tx.hash_b64,
                    query_id=f"{query_id:X}",
                    out_query_id=f"{out_query_id:X}",
                    amount_in=amount_in,
                    min_amount_out=min_amount_out)

        return DecodedSwap(
            query_id=query_id,
            amount_in=amount_in,
            src_wallet=src_wallet,
            dst_jetton=dst_jetton,
            min_amount_out=min_amount_out,
            to_address=to_address,
            has_ref=has_ref,
            out_query_id=out_query_id,
            out_to_address=out_to_address,
            out_sender_address=out_sender_address,
            src_jetton=tx.in_msg.source,
            pool_address=tx.out_msgs[0].destination,
        )
