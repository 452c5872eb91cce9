"""
Top-level Hyperliquid client combining REST queries, signed actions and streams.
"""
import logging
from typing import Any, Dict, Optional, Union

from .api.exchange import ExchangeAPI
from .api.http_client import HttpClient
from .api.info import InfoAPI
from .config import ClientConfig, load_config
from .security.request_signer import RequestSigner
from .websocket.subscription_manager import MessageCallback, SubscriptionManager

logger = logging.getLogger(__name__)


class HyperliquidClient:
    """Hyperliquid exchange client.

    ``info`` runs unsigned queries, ``exchange`` submits signed actions and
    ``ws`` manages stream subscriptions. A client built without a private key
    can query and subscribe but raises ``InvalidCredentialError`` on any
    signed action.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        http_client: Optional[HttpClient] = None,
        subscription_manager: Optional[SubscriptionManager] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Client configuration (mainnet, no credentials by default)
            http_client: Pre-built REST dispatcher
            subscription_manager: Pre-built stream manager
        """
        self.config = config or ClientConfig()

        self.signer: Optional[RequestSigner] = None
        if self.config.private_key:
            self.signer = RequestSigner(
                self.config.private_key,
                is_mainnet=self.config.is_mainnet,
                vault_address=self.config.vault_address,
            )

        self._http = http_client or HttpClient(
            base_url=self.config.rest_url,
            signer=self.signer,
            retry_policy=self.config.retry,
            rate_limit=self.config.rate_limit,
            rate_window=self.config.rate_window,
            timeout=self.config.timeout,
        )
        self._info = InfoAPI(self._http)
        self._exchange = ExchangeAPI(self._http, self._info)
        self._ws = subscription_manager or SubscriptionManager(
            self.config.ws_url,
            retry_policy=self.config.retry,
            ping_interval=self.config.ping_interval,
        )
        logger.info(
            f"Hyperliquid client created for {self.config.network.value} "
            f"({'signed' if self.signer else 'read-only'})"
        )

    @classmethod
    def mainnet(cls, private_key: Optional[str] = None, **kwargs) -> 'HyperliquidClient':
        """Client for the production network."""
        return cls(ClientConfig.mainnet(private_key, **kwargs))

    @classmethod
    def testnet(cls, private_key: Optional[str] = None, **kwargs) -> 'HyperliquidClient':
        """Client for the test network."""
        return cls(ClientConfig.testnet(private_key, **kwargs))

    @classmethod
    def from_config_file(cls, config_path: Optional[str] = None,
                         environ: Optional[Dict[str, str]] = None) -> 'HyperliquidClient':
        """Client configured from a YAML/JSON file and ``HYPERLIQUID_*`` variables."""
        return cls(load_config(config_path, environ))

    @property
    def info(self) -> InfoAPI:
        return self._info

    @property
    def exchange(self) -> ExchangeAPI:
        return self._exchange

    @property
    def ws(self) -> SubscriptionManager:
        return self._ws

    @property
    def address(self) -> Optional[str]:
        return self.signer.address if self.signer else None

    async def connect(self) -> None:
        """Open the stream connection."""
        await self._ws.connect()

    async def disconnect(self) -> None:
        """Close the stream connection, keeping registered subscriptions."""
        await self._ws.disconnect()

    async def subscribe(self, subscription: Union[str, Dict[str, Any]],
                        callback: MessageCallback) -> int:
        return await self._ws.subscribe(subscription, callback)

    async def unsubscribe(self, subscription_id: int) -> bool:
        return await self._ws.unsubscribe(subscription_id)

    async def close(self) -> None:
        """Close the stream and the HTTP session."""
        await self._ws.disconnect()
        await self._http.close()

    async def __aenter__(self) -> 'HyperliquidClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
