"""
Main entry point for the PubSubX interactive client.

This module is responsible for:
- Parsing command-line arguments and the YAML configuration.
- Setting up logging.
- Running the stdin reader thread and bridging each line onto the event
  loop (the Async/Sync bridge).
- Managing the overall application lifecycle (start, stop, OS signals).
"""

import argparse
import asyncio
import logging
import signal
import sys
import threading
from typing import Any, Callable, Coroutine, Dict, List, Optional, TextIO

from pubsubx.client.config_loader import load_config
from pubsubx.client.console import Console
from pubsubx.client.dispatcher import CommandDispatcher
from pubsubx.client.models import ErrorCode, Session


def setup_logging(level: str = "WARNING"):
    """
    Configures the global logging settings for the entire application.
    Diagnostics go to stderr; stdout is reserved for the console.
    """
    logging.basicConfig(
        level=level.upper(),
        stream=sys.stderr,
        format='%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'
    )

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pubsubx", description="Interactive PubSubX client")
    parser.add_argument("--config", default="pubsubx.yaml", help="Path to the YAML configuration file")
    parser.add_argument("--host", default=None, help="Broker host (overrides the config file)")
    parser.add_argument("--log-level", default=None, help="Logging level (overrides the config file)")
    return parser.parse_args(argv)


class CommandReader:
    loop: asyncio.AbstractEventLoop
    dispatch: Callable[[str], Coroutine[Any, Any, None]]
    console: Console
    stream: Optional[TextIO]
    _on_eof: Callable[[], None]
    _thread: Optional[threading.Thread]

    """
    Reads command lines on a dedicated thread and runs each one on the
    event loop, waiting for it to finish before reading the next line.
    The thread never touches the session itself.
    """
    def __init__(self, loop: asyncio.AbstractEventLoop, dispatch: Callable[[str], Coroutine[Any, Any, None]],
                 console: Console, on_eof: Callable[[], None], stream: Optional[TextIO] = None):
        self.loop = loop
        self.dispatch = dispatch
        self.console = console
        self.stream = stream
        self._on_eof = on_eof
        self._thread = None

    def start(self):
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._reader_loop, name="CommandReader", daemon=True)
            self._thread.start()
            logger.info("Command reader thread started.")
        else:
            logger.warning("Attempted to start command reader, but it's already running.")

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def _reader_loop(self):
        stream = self.stream or sys.stdin
        while True:
            self.console.prompt()
            line = stream.readline()
            if line == "":
                logger.info("End of input, stopping command reader.")
                self.loop.call_soon_threadsafe(self._on_eof)
                return

            # Blocks this thread only; the session loop keeps running meanwhile
            future = asyncio.run_coroutine_threadsafe(self.dispatch(line), self.loop)
            try:
                future.result()
            except Exception as e:
                logger.exception(f"Command {line.strip()!r} failed: {e}")
                self.console.error(ErrorCode.EXCEPTION, str(e))


async def shutdown(dispatcher: CommandDispatcher):
    """Graceful shutdown: say goodbye to the broker if still connected."""
    if dispatcher.session.connected:
        logger.info("Disconnecting from broker before exit...")
        await dispatcher.disconnect()
    else:
        await dispatcher.close()


async def main_application_runner(argv: Optional[List[str]] = None, stdin: Optional[TextIO] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level or "WARNING")
    console = Console()

    try:
        config: Dict[str, Any] = load_config(args.config)
    except Exception as e:
        console.error(ErrorCode.INIT_FAIL, f": {e}")
        return 1
    if args.log_level is None:
        logging.getLogger().setLevel(str(config['logging']['level']).upper())

    loop = asyncio.get_running_loop()
    session = Session(broker_host=args.host or config['broker']['host'])
    dispatcher = CommandDispatcher(
        session,
        console,
        buffer_size=int(config['framing']['buffer_size']),
        delimit_fragments=bool(config['framing']['delimit_fragments']),
    )

    finished = asyncio.Event()
    reader = CommandReader(loop, dispatcher.dispatch, console, on_eof=finished.set, stream=stdin)
    reader.start()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, finished.set)

    logger.info(f"Client ready, broker host is {session.broker_host}")
    try:
        await finished.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await shutdown(dispatcher)
    return 0


def run():
    try:
        sys.exit(asyncio.run(main_application_runner()))
    except KeyboardInterrupt:
        # Handled by the signal handler, but good to catch here just in case.
        pass


if __name__ == "__main__":
    run()
