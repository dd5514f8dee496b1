from __future__ import annotations

import argparse
import dataclasses
import enum
import logging
import signal
import threading
import time
from typing import List, Optional

import uvicorn
from dotenv import load_dotenv

from calendar_summary.config import AUTH_MODES, Config, load_config, parse_duration
from calendar_summary.errors import CalendarSummaryError, ConfigurationError
from calendar_summary.main import app
from calendar_summary.services.auth import make_authorizer
from calendar_summary.services.credentials import load_client_config
from calendar_summary.services.token_store import TokenStore

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class State(enum.Enum):
    STOPPED = "stopped"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"


class ServerLifecycle:
    """
    Run a uvicorn server on a background thread until SIGINT.

    uvicorn only installs its own signal handlers on the main thread, so the
    main thread stays free to wait for the interrupt. On shutdown uvicorn
    stops listening at once, lets in-flight requests run for the grace
    period (Config.timeout_graceful_shutdown), then cancels them.
    """

    def __init__(self, server: uvicorn.Server, grace: float, join_margin: float = 5.0):
        self.server = server
        self.grace = grace
        self.join_margin = join_margin
        self.state = State.STOPPED
        self._thread: Optional[threading.Thread] = None
        self._interrupted = threading.Event()

    def start(self, startup_timeout: float = 10.0) -> None:
        self._thread = threading.Thread(target=self.server.run, name="uvicorn", daemon=True)
        self._thread.start()
        deadline = time.monotonic() + startup_timeout
        while not self.server.started:
            if not self._thread.is_alive():
                raise RuntimeError("server exited during startup")
            if time.monotonic() > deadline:
                raise RuntimeError(f"server did not start within {startup_timeout}s")
            time.sleep(0.05)
        self.state = State.LISTENING

    def _on_interrupt(self, signum, frame) -> None:
        log.info("Received %s", signal.Signals(signum).name)
        self._interrupted.set()

    def wait_for_interrupt(self) -> bool:
        """
        Block until SIGINT. SIGTERM and friends keep their default action.

        Returns False if the server thread stopped on its own first.
        """
        previous = signal.signal(signal.SIGINT, self._on_interrupt)
        try:
            while not self._interrupted.wait(0.5):
                if self._thread is not None and not self._thread.is_alive():
                    log.error("Server thread stopped unexpectedly")
                    return False
        finally:
            signal.signal(signal.SIGINT, previous)
        return True

    def begin_shutdown(self) -> None:
        self.state = State.SHUTTING_DOWN
        self.server.should_exit = True

    def wait_stopped(self) -> bool:
        if self._thread is not None:
            self._thread.join(self.grace + self.join_margin)
            if self._thread.is_alive():
                return False
        self.state = State.STOPPED
        return True

    def shutdown(self) -> bool:
        """Drain and stop the server; False if it did not stop in time."""
        self.begin_shutdown()
        return self.wait_stopped()


def build_server(cfg: Config) -> uvicorn.Server:
    config = uvicorn.Config(
        app,
        host=cfg.host,
        port=cfg.port,
        timeout_keep_alive=int(cfg.idle_timeout),
        timeout_graceful_shutdown=cfg.graceful_timeout,
        log_level=cfg.log_level.lower(),
        log_config=None,
    )
    return uvicorn.Server(config)


def _duration_arg(text: str) -> float:
    try:
        return parse_duration(text)
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="calendar-summary",
        description="Serve a JSON summary of the last month of your Google Calendar events",
    )
    parser.add_argument(
        "-graceful-timeout", "--graceful-timeout",
        dest="graceful_timeout",
        type=_duration_arg,
        default=None,
        help="the duration for which the server gracefully waits for existing connections to finish - e.g. 15s or 1m",
    )
    parser.add_argument(
        "-auth", "--auth",
        dest="auth_mode",
        choices=AUTH_MODES,
        default=None,
        help="how to obtain a token when none is stored (default: AUTH_MODE or interactive)",
    )
    parser.add_argument(
        "-port", "--port",
        dest="port",
        type=int,
        default=None,
        help="TCP port to listen on (default: API_PORT or 8080)",
    )
    return parser


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()
    configure_logging()

    try:
        cfg = load_config()
        overrides = {k: v for k, v in vars(args).items() if v is not None}
        cfg = dataclasses.replace(cfg, **overrides)
        configure_logging(cfg.log_level)
        client = load_client_config(cfg.oauth_client_file, cfg.oauth_client_json)
        store = TokenStore(cfg.token_file, client, make_authorizer(cfg.auth_mode), cfg.token_json)
        # authorization happens here, never inside a request
        store.ensure()
    except CalendarSummaryError as e:
        log.error("Startup failed: %s", e)
        return 1
    except KeyboardInterrupt:
        log.info("Interrupted during startup")
        return 130

    app.state.config = cfg
    app.state.token_store = store

    lifecycle = ServerLifecycle(build_server(cfg), cfg.graceful_timeout)
    try:
        lifecycle.start()
    except RuntimeError as e:
        log.error("Unable to start server: %s", e)
        return 1
    log.info("Listening on %s:%d (graceful timeout %gs)", cfg.host, cfg.port, cfg.graceful_timeout)

    interrupted = lifecycle.wait_for_interrupt()
    log.info("shutting down")
    if not lifecycle.shutdown():
        log.error("Server did not stop within %gs", cfg.graceful_timeout + lifecycle.join_margin)
        return 1
    return 0 if interrupted else 1
