"""Main entry point - wires the controller, scheduler and tool server together."""

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import yaml
import uvicorn

from .tmux_controller import TmuxController
from .scheduler import TaskScheduler
from .engineer_manager import EngineerManager
from .server import create_app

logger = logging.getLogger(__name__)


def load_config(config_path: str = "config.yaml") -> dict:
    """Load configuration from YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


class OrchestratorApp:
    """Main application orchestrator."""

    def __init__(self, config: dict):
        self.config = config

        # Server config
        self.host = config.get("server", {}).get("host", "127.0.0.1")
        self.port = config.get("server", {}).get("port", 8430)

        # Initialize components
        self.tmux = TmuxController(config=config)
        self.scheduler = TaskScheduler(config=config)
        self.engineer_manager = EngineerManager(self.tmux, config=config)

        self.app = create_app(
            tmux=self.tmux,
            scheduler=self.scheduler,
            engineer_manager=self.engineer_manager,
            config=config,
        )
        self._server: Optional[uvicorn.Server] = None

    async def start(self):
        """Serve the tool API until asked to stop."""
        logger.info("Starting tmux PM orchestrator...")

        if not self.tmux.get_sessions():
            logger.warning("No tmux sessions found (is the tmux server running?)")

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="info",
        )
        self._server = uvicorn.Server(config)

        logger.info(f"Starting server on http://{self.host}:{self.port}")
        await self._server.serve()

    def stop(self):
        """Ask the server to exit. Scheduled deliveries keep running on their own."""
        active = self.scheduler.get_active_tasks()
        if active:
            logger.info(f"{len(active)} scheduled task(s) will still fire after shutdown")
        if self._server:
            self._server.should_exit = True
        logger.info("Shutdown requested")


def setup_signal_handlers(app: OrchestratorApp):
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, shutting down...")
        app.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main(config_path: str = "config.yaml"):
    """Main entry point."""
    # Setup logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = load_config(config_path)

    app = OrchestratorApp(config)
    setup_signal_handlers(app)

    try:
        await app.start()
    except KeyboardInterrupt:
        app.stop()


def run():
    """Entry point for console script."""
    parser = argparse.ArgumentParser(prog="pm-server", description="tmux PM orchestrator tool server")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    args = parser.parse_args()
    asyncio.run(main(args.config))


if __name__ == "__main__":
    run()
