import time
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, List, Optional, Union

import msgpack
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak, to_hex

from ..exceptions import InvalidCredentialError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
PRIVATE_KEY_HEX_LENGTH = 64

# Domain used for user-signed actions (transfers, withdrawals)
USER_SIGNATURE_CHAIN_ID = 0x66eee

EIP712_DOMAIN_TYPES = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

AGENT_TYPES = [
    {"name": "source", "type": "string"},
    {"name": "connectionId", "type": "bytes32"},
]

USD_SEND_TYPES = [
    {"name": "hyperliquidChain", "type": "string"},
    {"name": "destination", "type": "string"},
    {"name": "amount", "type": "string"},
    {"name": "time", "type": "uint64"},
]

WITHDRAW_TYPES = USD_SEND_TYPES


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def address_to_bytes(address: str) -> bytes:
    return bytes.fromhex(strip_hex_prefix(address))


def float_to_wire(value: Union[float, int, str, Decimal]) -> str:
    """Render a price or size the way the exchange expects it.

    At most 8 decimals, no trailing zeros. Values that would lose precision
    are rejected instead of silently rounded.
    """
    try:
        number = Decimal(str(value))
        rounded = number.quantize(Decimal("1e-8"))
    except InvalidOperation as e:
        raise ValueError(f"Cannot render {value!r} for the wire") from e

    if rounded != number:
        raise ValueError(f"{value} has more than 8 decimals")
    if rounded == 0:
        return "0"
    return f"{rounded.normalize():f}"


def _parse_private_key(private_key: Optional[str]) -> str:
    if not private_key:
        raise InvalidCredentialError("Private key is required for signed actions")
    if not isinstance(private_key, str):
        raise InvalidCredentialError("Private key must be a hex string")

    key_hex = strip_hex_prefix(private_key.strip())
    if len(key_hex) != PRIVATE_KEY_HEX_LENGTH:
        raise InvalidCredentialError(
            f"Private key must be {PRIVATE_KEY_HEX_LENGTH} hex characters, got {len(key_hex)}"
        )
    try:
        key_bytes = bytes.fromhex(key_hex)
    except ValueError:
        raise InvalidCredentialError("Private key is not valid hex")
    if not any(key_bytes):
        raise InvalidCredentialError("Private key must not be zero")
    return "0x" + key_hex


def address_from_key(private_key: str) -> str:
    """Derive the checksummed address for a private key."""
    key_hex = _parse_private_key(private_key)
    try:
        return Account.from_key(key_hex).address
    except Exception as e:
        raise InvalidCredentialError(f"Invalid private key: {e}") from e


class NonceManager:
    """Hands out strictly increasing millisecond nonces."""

    def __init__(self, clock=None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            nonce = max(int(self._clock()), self._last + 1)
            self._last = nonce
            return nonce

    def observe(self, nonce: int) -> None:
        """Make sure later nonces are greater than an externally chosen one."""
        with self._lock:
            self._last = max(self._last, int(nonce))

    @property
    def last(self) -> int:
        return self._last


@dataclass(frozen=True)
class SignedRequest:
    """An action together with its nonce and signature."""
    action: Dict[str, Any]
    nonce: int
    signature: Dict[str, Any]
    vault_address: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "action": self.action,
            "nonce": self.nonce,
            "signature": self.signature,
        }
        if self.vault_address:
            payload["vaultAddress"] = self.vault_address
        return payload


class RequestSigner:
    """Signs exchange actions with an EVM private key."""

    def __init__(
        self,
        private_key: Optional[str],
        is_mainnet: bool = True,
        vault_address: Optional[str] = None,
        nonce_manager: Optional[NonceManager] = None,
    ):
        key_hex = _parse_private_key(private_key)
        try:
            self._account = Account.from_key(key_hex)
        except Exception as e:
            raise InvalidCredentialError(f"Invalid private key: {e}") from e

        self.is_mainnet = is_mainnet
        self.vault_address = vault_address.lower() if vault_address else None
        self.nonces = nonce_manager or NonceManager()
        logger.debug(f"Signer initialised for {self.address}")

    @property
    def address(self) -> str:
        return self._account.address

    def __repr__(self) -> str:
        return f"RequestSigner(address={self.address!r}, is_mainnet={self.is_mainnet})"

    def sign(self, action: Dict[str, Any], nonce: Optional[int] = None) -> SignedRequest:
        """Sign an L1 action (orders, cancels, leverage...).

        Args:
            action: Action mapping, e.g. ``{"type": "order", ...}``
            nonce: Explicit nonce; a fresh one is allocated when omitted

        Returns:
            SignedRequest ready to POST to ``/exchange``
        """
        if nonce is None:
            nonce = self.nonces.next()
        else:
            self.nonces.observe(nonce)

        connection_id = action_hash(action, nonce, self.vault_address)
        typed_data = l1_typed_data(connection_id, self.is_mainnet)
        return SignedRequest(
            action=action,
            nonce=nonce,
            signature=self._sign_typed_data(typed_data),
            vault_address=self.vault_address,
        )

    def sign_user_action(
        self,
        action: Dict[str, Any],
        payload_types: List[Dict[str, str]],
        primary_type: str,
    ) -> SignedRequest:
        """Sign a user action (transfer, withdrawal) directly as EIP-712 data.

        The action's ``time`` field doubles as the nonce; it is allocated here
        when missing.
        """
        action = dict(action)
        if "time" not in action:
            action["time"] = self.nonces.next()
        else:
            self.nonces.observe(action["time"])

        action["signatureChainId"] = hex(USER_SIGNATURE_CHAIN_ID)
        action["hyperliquidChain"] = "Mainnet" if self.is_mainnet else "Testnet"

        typed_data = user_typed_data(action, payload_types, primary_type)
        return SignedRequest(
            action=action,
            nonce=action["time"],
            signature=self._sign_typed_data(typed_data),
        )

    def _sign_typed_data(self, typed_data: Dict[str, Any]) -> Dict[str, Any]:
        signable = encode_typed_data(full_message=typed_data)
        signed = self._account.sign_message(signable)
        return {"r": to_hex(signed.r), "s": to_hex(signed.s), "v": signed.v}


def action_hash(action: Dict[str, Any], nonce: int, vault_address: Optional[str]) -> bytes:
    """keccak(msgpack(action) || nonce || vault flag), the phantom agent's connectionId."""
    data = msgpack.packb(action)
    data += nonce.to_bytes(8, "big")
    if vault_address is None:
        data += b"\x00"
    else:
        data += b"\x01" + address_to_bytes(vault_address)
    return keccak(data)


def l1_typed_data(connection_id: bytes, is_mainnet: bool) -> Dict[str, Any]:
    return {
        "domain": {
            "chainId": 1337,
            "name": "Exchange",
            "verifyingContract": ZERO_ADDRESS,
            "version": "1",
        },
        "types": {
            "Agent": AGENT_TYPES,
            "EIP712Domain": EIP712_DOMAIN_TYPES,
        },
        "primaryType": "Agent",
        "message": {
            "source": "a" if is_mainnet else "b",
            "connectionId": connection_id,
        },
    }


def user_typed_data(action: Dict[str, Any], payload_types: List[Dict[str, str]],
                    primary_type: str) -> Dict[str, Any]:
    return {
        "domain": {
            "name": "HyperliquidSignTransaction",
            "version": "1",
            "chainId": USER_SIGNATURE_CHAIN_ID,
            "verifyingContract": ZERO_ADDRESS,
        },
        "types": {
            primary_type: payload_types,
            "EIP712Domain": EIP712_DOMAIN_TYPES,
        },
        "primaryType": primary_type,
        "message": action,
    }


def recover_signer(typed_data: Dict[str, Any], signature: Dict[str, Any]) -> str:
    """Recover the address that produced a signature over typed data."""
    signable = encode_typed_data(full_message=typed_data)
    vrs = (signature["v"], int(signature["r"], 16), int(signature["s"], 16))
    return Account.recover_message(signable, vrs=vrs)
