"""uvicorn server wired to the indexer's shutdown sequence.

uvicorn only runs the lifespan shutdown after it has stopped listening and
drained open connections. The indexer flips its health flags and starts
stopping the poller as soon as the signal lands, so health checks see 503
during the drain and the poller stop shares the same timeout window.
"""

import asyncio

import structlog
import uvicorn
from fastapi import FastAPI

logger = structlog.get_logger()


class IndexerServer(uvicorn.Server):
    """``uvicorn.Server`` that starts the indexer shutdown on SIGINT/SIGTERM."""

    def __init__(self, app: FastAPI, config: uvicorn.Config):
        super().__init__(config)
        self.app = app

    def handle_exit(self, sig, frame) -> None:
        if not self.should_exit:
            logger.info("Shutdown signal received", signal=int(sig))
            self.app.state.health.start_shutdown()
            poller = self.app.state.poller
            if poller is not None:
                try:
                    loop = asyncio.get_running_loop()
                except RuntimeError:
                    loop = None
                if loop is not None:
                    loop.call_soon_threadsafe(poller.request_stop)
        super().handle_exit(sig, frame)


def build_server(app: FastAPI, host: str, port: int, shutdown_timeout: float) -> IndexerServer:
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        timeout_graceful_shutdown=int(shutdown_timeout),
    )
    return IndexerServer(app, config)
