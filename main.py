"""Standalone runner hosting the Polygon trigger outside a workflow engine"""

import asyncio
import signal
import sys
from typing import Optional

import structlog
from dotenv import load_dotenv

from polygon_nodes.chains.provider import PolygonProvider
from polygon_nodes.config.models import RpcCredentials, Settings
from polygon_nodes.errors import NodeError
from polygon_nodes.monitoring.metrics import start_metrics_server
from polygon_nodes.nodes.base import NodeRuntime
from polygon_nodes.nodes.context import LocalContext
from polygon_nodes.nodes.trigger import PolygonTrigger
from polygon_nodes.utils.logging import setup_logging

# Load environment variables
load_dotenv()

logger = structlog.get_logger()


class Application:
    """Runner orchestrator: settings, metrics and the poll loop"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings
        self.runtime = NodeRuntime()
        self.context: Optional[LocalContext] = None
        self.trigger: Optional[PolygonTrigger] = None

        self._running = False
        self._poll_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

        self._logger = logger.bind(component="application")

    async def initialize(self) -> None:
        """Load settings, configure logging and check the RPC endpoint"""
        if self.settings is None:
            self.settings = Settings()
        setup_logging(self.settings.log_level)

        self._logger.info(
            "application_initializing",
            network=self.settings.network,
            rpc_provider=self.settings.rpc_provider,
            event=self.settings.trigger_event,
        )

        credentials = {"polygonRpc": self.settings.get_rpc_credentials()}
        explorer_credentials = self.settings.get_explorer_credentials()
        if explorer_credentials:
            credentials["polygonScan"] = explorer_credentials

        self.context = LocalContext(
            parameters=self.settings.get_trigger_parameters(),
            credentials=credentials,
        )
        self.trigger = PolygonTrigger(runtime=self.runtime)

        provider = PolygonProvider.from_credentials(
            RpcCredentials.from_host(self.settings.get_rpc_credentials())
        )
        chain_id = await provider.verify_chain_id()
        self._logger.info("application_initialized", chain_id=chain_id)

    async def start(self) -> None:
        """Start the metrics server and the poll loop"""
        if self.settings.prometheus_port:
            self._logger.info("starting_metrics_server", port=self.settings.prometheus_port)
            start_metrics_server(port=self.settings.prometheus_port)

        self._running = True
        self._poll_task = asyncio.create_task(self._poll_loop())
        self._logger.info("application_started")

    async def poll_once(self) -> int:
        """Run a single poll and log the emitted items; returns the item count"""
        result = await self.trigger.poll(self.context)
        if not result:
            return 0

        items = result[0]
        for item in items:
            self._logger.info("trigger_item", **item["json"])
        return len(items)

    async def _poll_loop(self) -> None:
        interval = self.settings.poll_interval_seconds
        try:
            while self._running:
                try:
                    await self.poll_once()
                except NodeError as e:
                    # The cursor only moves past fully processed blocks, so the next poll retries
                    self._logger.error(
                        "trigger_poll_failed",
                        error=e.message,
                        error_type=type(e).__name__,
                    )
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self._logger.error(
                        "poll_loop_error",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            self._logger.info("poll_loop_cancelled")
        finally:
            self._logger.info("poll_loop_exited")

    async def stop(self) -> None:
        """Stop the poll loop"""
        self._logger.info("application_stopping")
        self._running = False

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass

        self._logger.info("application_stopped")

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown"""
        def signal_handler(signum, frame):
            self._logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
            self._shutdown_event.set()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    async def wait_for_shutdown(self) -> None:
        await self._shutdown_event.wait()


async def main() -> None:
    """Main runner entry point"""
    app = Application()

    try:
        await app.initialize()
        app.setup_signal_handlers()
        await app.start()
        await app.wait_for_shutdown()
        await app.stop()
        logger.info("application_shutdown_complete")
    except NodeError as e:
        logger.error("application_error", error=e.message, error_type=type(e).__name__)
        await app.stop()
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("application_terminated")
