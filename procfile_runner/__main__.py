"""Run the Procfile runner as a persistent MCP daemon over HTTP.

Usage:
    python -m procfile_runner [PROCFILE] [--port PORT]

Child processes live as long as the daemon; SIGINT/SIGTERM stops them
all before exiting.
"""

import argparse
import asyncio
import dataclasses
import logging
import signal

import uvicorn

from procfile_runner.app import ProcfileRunner
from procfile_runner.config import Config
from procfile_runner.process_manager.server import create_server

log = logging.getLogger(__name__)


async def _run(config: Config, procfile: str | None) -> None:
    runner = ProcfileRunner(config)
    await runner.startup()
    server = create_server(runner, host=config.host, port=config.port)

    if procfile:
        if not await runner.load_procfile(procfile):
            log.error("Could not load %s: %s", procfile, runner.status.text)

    # Run uvicorn in the same event loop so the supervisor's async
    # tasks (stream readers, exit waiters) stay alive.
    app = server.streamable_http_app()
    uvi_config = uvicorn.Config(
        app, host=config.host, port=config.port, log_level="info",
    )
    uvi = uvicorn.Server(uvi_config)

    # Use _serve() instead of serve() to bypass uvicorn's
    # capture_signals() context manager which overrides signal
    # handlers with signal.signal(), preventing our async
    # handlers from working.
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    serve_task = asyncio.create_task(uvi._serve())

    # Block until a signal arrives
    await shutdown.wait()
    log.info("Signal received, shutting down")

    # Tell uvicorn to stop, then clean up child processes
    uvi.should_exit = True
    await serve_task
    log.info("Stopping all processes")
    await runner.shutdown()


def main() -> None:
    parser = argparse.ArgumentParser(description="Procfile runner daemon")
    parser.add_argument(
        "procfile", nargs="?",
        help="Procfile to load on startup",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port to listen on (default: PROCFILE_RUNNER_PORT or 8902)",
    )
    parser.add_argument(
        "--env-file", default=None,
        help="dotenv file with PROCFILE_RUNNER_* settings",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [procfile-runner] %(levelname)s %(message)s",
    )

    config = Config.from_env(args.env_file)
    if args.port is not None:
        config = dataclasses.replace(config, port=args.port)

    log.info("Starting procfile-runner on http://%s:%d/mcp", config.host, config.port)
    asyncio.run(_run(config, args.procfile))


if __name__ == "__main__":
    main()
