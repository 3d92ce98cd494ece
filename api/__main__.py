"""Command line interface for running the API server."""
import argparse
import asyncio
import logging
import signal

import uvicorn

from config import load_settings_conf, SettingsError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

class UvicornServer:
    """Wrapper for running uvicorn with proper lifecycle management."""

    def __init__(self, app, host: str = "0.0.0.0", port: int = 8000):
        self.config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info"
        )
        self.server = uvicorn.Server(self.config)

    async def run(self):
        """Run the server in a way that can be stopped."""
        await self.server.serve()

    def stop(self):
        """Ask the server to exit."""
        self.server.should_exit = True

async def main(settings_path: str) -> int:
    """Load settings and serve the API until interrupted."""
    try:
        settings = load_settings_conf(settings_path)
    except SettingsError as e:
        logger.error(str(e))
        return 1

    from api import create_app

    server = UvicornServer(
        create_app(settings),
        host=settings['api_host'],
        port=settings['api_port']
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, server.stop)

    logger.info(f"Starting API on {settings['api_host']}:{settings['api_port']}")
    await server.run()
    logger.info("API stopped")
    return 0

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the marketplace API")
    parser.add_argument(
        "--settings",
        default=".",
        help="Directory containing settings.conf"
    )
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(args.settings)))
