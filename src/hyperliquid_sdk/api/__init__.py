"""REST access: the dispatcher plus the info and exchange facades."""

from .http_client import HttpClient, RateLimiter
from .info import InfoAPI, INFO_ENDPOINT
from .exchange import ExchangeAPI, EXCHANGE_ENDPOINT

__all__ = [
    'HttpClient',
    'RateLimiter',
    'InfoAPI',
    'ExchangeAPI',
    'INFO_ENDPOINT',
    'EXCHANGE_ENDPOINT',
]
