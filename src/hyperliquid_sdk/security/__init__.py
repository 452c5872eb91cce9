"""Request signing for authenticated exchange actions."""

from .request_signer import (
    RequestSigner,
    SignedRequest,
    NonceManager,
    USD_SEND_TYPES,
    WITHDRAW_TYPES,
    action_hash,
    address_from_key,
    float_to_wire,
    recover_signer,
)

__all__ = [
    'RequestSigner',
    'SignedRequest',
    'NonceManager',
    'USD_SEND_TYPES',
    'WITHDRAW_TYPES',
    'action_hash',
    'address_from_key',
    'float_to_wire',
    'recover_signer',
]
