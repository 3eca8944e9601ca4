#!/usr/bin/env python3
"""
Lottery Client Application

Main entry point: wires the wallet session, state store, event subscription
and transaction executor to a contract over JSON-RPC and serves the
synchronized view to the browser.
"""

import asyncio
import signal
import sys
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# .env is loaded before the logger reads LOG_LEVEL / LOG_FILE
load_dotenv()

from lotto_sync.blockchain.client import BlockchainClient  # noqa: E402
from lotto_sync.lottery.state_store import LotteryStateStore  # noqa: E402
from lotto_sync.lottery.status import StatusBoard  # noqa: E402
from lotto_sync.lottery.subscriptions import EventSubscriptionManager  # noqa: E402
from lotto_sync.lottery.transactions import TransactionExecutor  # noqa: E402
from lotto_sync.utils.config import get_config_value, load_config  # noqa: E402
from lotto_sync.utils.logger import get_logger  # noqa: E402
from lotto_sync.wallet.providers import build_wallet_provider  # noqa: E402
from lotto_sync.wallet.session import WalletSession  # noqa: E402
from lotto_sync.web_server import LotteryWebServer  # noqa: E402

logger = get_logger(__name__)


class LotteryClientApp:
    """Builds the components from configuration and runs them until a signal arrives."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or load_config()
        self.running = True

        lottery_cfg = self.config.get("lottery", {})
        self.store = LotteryStateStore(winner_history=int(lottery_cfg.get("winner_history", 5)))
        self.status = StatusBoard()
        self.subscriptions = EventSubscriptionManager(self.store, self.status, self.config)

        self.blockchain_client = BlockchainClient(self.config)
        self.session: Optional[WalletSession] = None
        self.executor: Optional[TransactionExecutor] = None
        self.web_server: Optional[LotteryWebServer] = None
        self._server_task: Optional[asyncio.Task] = None

    def _display_config_summary(self) -> None:
        logger.info("=" * 60)
        logger.info("RPC URL: %s", get_config_value(self.config, "blockchain.rpc_url", "Not configured"))
        logger.info("Chain ID: %s", get_config_value(self.config, "blockchain.chain_id", "Not configured"))
        logger.info("Contract: %s", get_config_value(self.config, "blockchain.contract_address", "Not configured"))
        logger.info("Wallet mode: %s", get_config_value(self.config, "wallet.mode", "local"))
        logger.info("Entry value: %s ETH", get_config_value(self.config, "lottery.entry_value_eth"))
        logger.info(
            "Server: %s:%s",
            get_config_value(self.config, "server.host", "127.0.0.1"),
            get_config_value(self.config, "server.port", 6080),
        )
        logger.info("=" * 60)

    async def initialize(self) -> None:
        """Connect to the RPC endpoint and build the session, executor and web server."""
        self._display_config_summary()

        await self.blockchain_client.initialize()

        wallet = build_wallet_provider(self.config, self.blockchain_client.w3)
        self.session = WalletSession(
            wallet,
            self.blockchain_client.bind,
            self.store,
            self.subscriptions,
            self.status,
            self.config,
        )
        self.executor = TransactionExecutor(self.session, self.status, self.config, store=self.store)
        self.web_server = LotteryWebServer(
            self.config,
            self.session,
            self.executor,
            self.store,
            self.status,
            blockchain_status=self.blockchain_client.get_client_status(),
        )
        logger.info("Lottery client initialized")

    async def start(self) -> None:
        """Start serving and run until a shutdown signal is received."""
        try:
            await self.initialize()

            if get_config_value(self.config, "wallet.auto_connect") in (True, "true", "1"):
                await self.session.connect()

            server_task = self._server_task = asyncio.create_task(
                self.web_server.start(
                    host=get_config_value(self.config, "server.host", "127.0.0.1"),
                    port=int(get_config_value(self.config, "server.port", 6080)),
                )
            )

            while self.running and not server_task.done():
                await asyncio.sleep(1)

            if server_task.done() and server_task.exception():
                raise server_task.exception()
            logger.info("Shutdown requested, stopping lottery client...")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop all services; safe to call more than once."""
        self.running = False

        if self.session is not None:
            try:
                await self.session.disconnect()
            except Exception as e:
                logger.error("Error disconnecting wallet session: %s", e)

        if self.web_server is not None:
            try:
                await self.web_server.stop()
            except Exception as e:
                logger.error("Error stopping web server: %s", e)

        if self._server_task is not None and not self._server_task.done():
            self._server_task.cancel()

        await self.blockchain_client.close()
        self.store.clear()
        logger.info("Lottery client stopped")

    def handle_signal(self, signum, frame) -> None:
        logger.info("Received signal %s, initiating graceful shutdown...", signum)
        self.running = False


async def main() -> None:
    """Main entry point for the lottery client"""
    app = LotteryClientApp()

    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Lottery client interrupted by user")
    except Exception as e:
        logger.exception("Lottery client failed: %s", e)
        sys.exit(1)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
