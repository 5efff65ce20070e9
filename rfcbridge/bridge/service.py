"""Bridge service: one-shot argv execution and the long-running stdio loop."""

from __future__ import annotations

from typing import IO, Sequence

from loguru import logger

from rfcbridge.bridge.dispatcher import CommandDispatcher
from rfcbridge.bridge.protocol import Envelope
from rfcbridge.bridge.serialization import encode_envelope_line, parse_command_line
from rfcbridge.config.schema import BridgeSettings
from rfcbridge.remote.contracts import RemoteConnector
from rfcbridge.utils.exceptions import RfcBridgeError

SHUTDOWN_COMMAND = "shutdown"


class BridgeService:
    """Owns one dispatcher, so a registered destination lives as long as the service."""

    def __init__(self, settings: BridgeSettings, connector: RemoteConnector):
        self.settings = settings
        self.dispatcher = CommandDispatcher(settings, connector)

    @staticmethod
    def write(envelope: Envelope, stdout: IO[str]) -> None:
        stdout.write(encode_envelope_line(envelope) + "\n")
        stdout.flush()

    def run_once(self, argv: Sequence[str]) -> Envelope:
        """First token is the command; the rest, joined by spaces, is the JSON payload."""
        if not argv:
            return self.dispatcher.dispatch(None)
        command, rest = argv[0], " ".join(argv[1:])
        return self.dispatcher.dispatch(command, rest)

    def serve(self, stdin: IO[str], stdout: IO[str]) -> int:
        """Answer request lines until EOF or shutdown; returns the number handled."""
        handled = 0
        logger.info("rfcbridge service ready (connector={})", self.dispatcher.connector.name)
        try:
            for line in stdin:
                if not line.strip():
                    continue
                try:
                    request = parse_command_line(line)
                except RfcBridgeError as exc:
                    logger.warning("Rejected request line: {}", exc.message)
                    self.write(Envelope.fail(exc.message, code=exc.code), stdout)
                    continue
                if request.command.strip().lower() == SHUTDOWN_COMMAND:
                    logger.info("Shutdown requested")
                    self.write(Envelope.ok({"shutdown": True}, request_id=request.id), stdout)
                    break
                self.write(self.dispatcher.handle(request), stdout)
                handled += 1
        finally:
            self.close()
        logger.info("rfcbridge service stopped after {} requests", handled)
        return handled

    def close(self) -> None:
        self.dispatcher.close()
