"""
Cross-transaction bundles and their submission to the coordinator.

A bundle carries one signed transaction per chain. It is serialized with the
xt.proto schema, hex-encoded and sent as the single parameter of the custom
``eth_sendXTransaction`` JSON-RPC method. Acceptance by the coordinator says
nothing about execution; confirm each leg with the poller.
"""
import logging
import threading
import urllib.parse
from typing import Any, Dict, List, Optional, Tuple

import requests
from google.protobuf.message import DecodeError, EncodeError
from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from .exceptions import CancellationError, CoordinationError, EncodingError
from .proto import Message as ProtoMessage
from .proto import TransactionRequest as ProtoTransactionRequest
from .proto import XTRequest as ProtoXTRequest
from .rollup import MAX_CHAIN_ID, Rollup
from .transactions import SignedTransaction

logger = logging.getLogger(__name__)

SEND_XTX_RPC_METHOD = "eth_sendXTransaction"
DEFAULT_SENDER_ID = "client"

Leg = Tuple[Rollup, SignedTransaction]


def chain_id_to_bytes(chain_id: int) -> bytes:
    """
    Encode a chain id as minimal big-endian bytes (0 encodes to b"").

    Raises:
        EncodingError: If the id is negative or does not fit in uint64
    """
    if not 0 <= chain_id < MAX_CHAIN_ID:
        raise EncodingError(f"chain id out of uint64 range: {chain_id}")
    return chain_id.to_bytes((chain_id.bit_length() + 7) // 8, "big")


def chain_id_from_bytes(data: bytes) -> int:
    """
    Decode a big-endian chain id.

    Raises:
        EncodingError: If the value does not fit in uint64
    """
    value = int.from_bytes(data, "big")
    if value >= MAX_CHAIN_ID:
        raise EncodingError(f"chain id out of uint64 range: 0x{data.hex()}")
    return value


class BundleLeg(BaseModel):
    """One chain-addressed entry of a bundle"""
    model_config = ConfigDict(frozen=True)

    chain_id: int = Field(..., ge=0, lt=MAX_CHAIN_ID)
    transactions: List[bytes]

    def to_proto(self) -> ProtoTransactionRequest:
        return ProtoTransactionRequest(
            chain_id=chain_id_to_bytes(self.chain_id),
            transaction=list(self.transactions),
        )

    @classmethod
    def from_proto(cls, proto_request: ProtoTransactionRequest) -> "BundleLeg":
        return cls(
            chain_id=chain_id_from_bytes(proto_request.chain_id),
            transactions=list(proto_request.transaction),
        )


class CrossTxBundle(BaseModel):
    """
    Cross-transaction request: a sender id plus ordered chain-addressed legs.

    The schema allows several payloads per leg; this client always emits one.
    """
    model_config = ConfigDict(frozen=True)

    sender_id: str
    legs: List[BundleLeg]

    def to_proto(self) -> ProtoMessage:
        """
        Convert to the protobuf Message envelope.

        Returns:
            Proto Message with the xt_request payload set
        """
        xt_request = ProtoXTRequest(transactions=[leg.to_proto() for leg in self.legs])
        return ProtoMessage(sender_id=self.sender_id, xt_request=xt_request)

    @classmethod
    def from_proto(cls, proto_message: ProtoMessage) -> "CrossTxBundle":
        """
        Create a CrossTxBundle from a proto Message.

        Raises:
            EncodingError: If the message carries no xt_request payload
        """
        payload = proto_message.WhichOneof("payload")
        if payload != "xt_request":
            raise EncodingError(f"unsupported message payload: {payload!r}")
        return cls(
            sender_id=proto_message.sender_id,
            legs=[BundleLeg.from_proto(req) for req in proto_message.xt_request.transactions],
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view with hex-encoded payloads."""
        return {
            "sender_id": self.sender_id,
            "legs": [
                {"chain_id": leg.chain_id, "transactions": [Web3.to_hex(tx) for tx in leg.transactions]}
                for leg in self.legs
            ],
        }


def build_bundle(leg_a: Leg, leg_b: Leg, sender_id: str = DEFAULT_SENDER_ID) -> CrossTxBundle:
    """
    Pair two signed transactions with their target chains.

    Chain ids are taken from the rollups exactly as given. A signed
    transaction bound to another chain is logged but never re-targeted; the
    destination chain rejects it.
    """
    legs = []
    for rollup, signed in (leg_a, leg_b):
        if signed.chain_id != rollup.chain_id:
            logger.warning(
                f"Leg {signed.hash_hex} was signed for chain {signed.chain_id} "
                f"but targets {rollup.name} (chain {rollup.chain_id})"
            )
        legs.append(BundleLeg(chain_id=rollup.chain_id, transactions=[signed.raw_transaction]))
    return CrossTxBundle(sender_id=sender_id, legs=legs)


def encode_bundle(bundle: CrossTxBundle) -> bytes:
    """
    Serialize a bundle to the wire format.

    Raises:
        EncodingError: If protobuf serialization fails
    """
    message = bundle.to_proto()
    logger.debug(f"Cross tx request msg created successfully: {message}")
    try:
        encoded = message.SerializeToString(deterministic=True)
    except (EncodeError, ValueError) as e:
        raise EncodingError(f"failed to marshal XTRequest: {e}") from e
    logger.debug(f"Cross tx request msg encoded successfully: {encoded.hex()}")
    return encoded


def encode_cross_tx(leg_a: Leg, leg_b: Leg, sender_id: str = DEFAULT_SENDER_ID) -> bytes:
    """
    Build and serialize a two-leg cross-transaction request.

    Args:
        leg_a: (rollup, signed transaction) for the first chain
        leg_b: (rollup, signed transaction) for the second chain
        sender_id: Identifier of the submitting client

    Returns:
        Serialized Message bytes

    Raises:
        EncodingError: If serialization fails
    """
    return encode_bundle(build_bundle(leg_a, leg_b, sender_id=sender_id))


def decode_cross_tx(data: bytes) -> CrossTxBundle:
    """
    Parse wire bytes back into a bundle.

    Args:
        data: Serialized Message, raw bytes or 0x-prefixed hex

    Returns:
        CrossTxBundle

    Raises:
        EncodingError: If the bytes are not a valid cross-tx Message
    """
    if isinstance(data, str):
        try:
            data = bytes.fromhex(data[2:] if data.startswith(("0x", "0X")) else data)
        except ValueError as e:
            raise EncodingError(f"invalid hex payload: {e}") from e

    message = ProtoMessage()
    try:
        message.ParseFromString(data)
    except DecodeError as e:
        raise EncodingError(f"failed to unmarshal cross tx message: {e}") from e
    return CrossTxBundle.from_proto(message)


def _is_empty_result(result: Any) -> bool:
    return result is None or result == "" or result == [] or result == {}


class CoordinatorClient:
    """
    Client for the coordinator's eth_sendXTransaction endpoint.

    Every submission opens its own HTTP session and closes it afterwards.
    There is no retry here: a failed submission is reported to the caller.
    """

    def __init__(self, rpc_url: str, timeout: int = 30):
        """
        Initialize the coordinator client

        Args:
            rpc_url: Coordinator JSON-RPC URL (usually chain A's endpoint)
            timeout: Timeout for the HTTP request in seconds

        Raises:
            CoordinationError: If the URL is not an http(s) URL
        """
        parsed = urllib.parse.urlparse(rpc_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise CoordinationError(
                f"Invalid coordinator URL '{rpc_url}': must be http:// or https://", rpc_url=rpc_url
            )
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._request_id = 0
        self._id_lock = threading.Lock()

    def _next_id(self) -> int:
        with self._id_lock:
            self._request_id += 1
            return self._request_id

    def submit(self, encoded_bundle: bytes, cancel_event: Optional[threading.Event] = None) -> None:
        """
        Submit a serialized bundle for coordination.

        Args:
            encoded_bundle: Serialized Message bytes
            cancel_event: Optional event; if set the call is not issued. A request
                already in flight is not interrupted and is bounded by ``timeout``.

        Raises:
            CancellationError: If cancel_event is set
            CoordinationError: On transport failure or coordinator rejection
        """
        if cancel_event is not None and cancel_event.is_set():
            raise CancellationError("cancelled before submitting cross tx request")

        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": SEND_XTX_RPC_METHOD,
            "params": ["0x" + encoded_bundle.hex()],
        }

        with requests.Session() as session:
            try:
                response = session.post(self.rpc_url, json=payload, timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                logger.error(f"Cross tx request to {self.rpc_url} failed: {e}")
                raise CoordinationError(f"RPC call failed: {e}", rpc_url=self.rpc_url) from e

            try:
                body = response.json()
            except ValueError as e:
                raise CoordinationError(f"RPC call failed: invalid JSON response: {e}", rpc_url=self.rpc_url) from e

        if not isinstance(body, dict):
            raise CoordinationError(f"RPC call failed: unexpected response {body!r}", rpc_url=self.rpc_url)

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message", "unknown error")
                code = error.get("code")
            else:
                message, code = str(error), None
            logger.error(f"Coordinator rejected cross tx request: {message} (code {code})")
            raise CoordinationError(f"RPC call failed: {message}", code=code, rpc_url=self.rpc_url)

        result = body.get("result")
        if not _is_empty_result(result):
            raise CoordinationError(
                f"RPC call failed: unexpected non-null result {result!r}", rpc_url=self.rpc_url
            )

        logger.info(f"Cross tx request msg sent successfully: {encoded_bundle.hex()}")


def send_cross_tx_request(
    rpc_url: str,
    encoded_bundle: bytes,
    timeout: int = 30,
    cancel_event: Optional[threading.Event] = None
) -> None:
    """
    Submit a serialized bundle to the coordinator at rpc_url.

    Raises:
        CoordinationError: On transport failure or coordinator rejection
        CancellationError: If cancel_event is set
    """
    CoordinatorClient(rpc_url, timeout=timeout).submit(encoded_bundle, cancel_event=cancel_event)
