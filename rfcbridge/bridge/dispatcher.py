"""Command dispatcher: command name + JSON payload in, one envelope out."""

from __future__ import annotations

from typing import Any

from loguru import logger

from rfcbridge.bridge.error_boundary import exception_result, no_command_result
from rfcbridge.bridge.handlers import COMMAND_HANDLERS, REQUIRES_DESTINATION, HandlerContext
from rfcbridge.bridge.protocol import CommandRequest, Envelope
from rfcbridge.bridge.registry import DestinationRegistry
from rfcbridge.bridge.serialization import parse_payload
from rfcbridge.config.schema import BridgeSettings
from rfcbridge.remote.contracts import RemoteConnector
from rfcbridge.utils.exceptions import UnknownCommandError


class CommandDispatcher:
    """
    Routes commands to handlers and converts every failure to an envelope.

    Holds the destination registry, so state survives between dispatches
    for as long as the dispatcher lives.
    """

    def __init__(self, settings: BridgeSettings, connector: RemoteConnector):
        self.settings = settings
        self.connector = connector
        self.registry = DestinationRegistry(connector, name=settings.destination_name)
        self._ctx = HandlerContext(settings=settings, registry=self.registry)

    @property
    def commands(self) -> list[str]:
        return list(COMMAND_HANDLERS)

    def dispatch(
        self,
        command: str | None,
        payload: str | dict[str, Any] | None = None,
        *,
        request_id: str | None = None,
    ) -> Envelope:
        name = (command or "").strip().lower()
        if not name:
            return no_command_result(request_id=request_id)
        try:
            handler = COMMAND_HANDLERS.get(name)
            if handler is None:
                raise UnknownCommandError(command.strip())
            body = parse_payload(payload)
            if name in REQUIRES_DESTINATION:
                self.registry.require()
            logger.debug("Dispatching {}", name)
            data = handler(self._ctx, body)
        except Exception as exc:
            return exception_result(
                command=name,
                exc=exc,
                include_trace=self.settings.include_trace,
                request_id=request_id,
            )
        return Envelope.ok(data, request_id=request_id)

    def handle(self, request: CommandRequest) -> Envelope:
        return self.dispatch(request.command, request.payload, request_id=request.id)

    def close(self) -> None:
        """Drop the registered destination, if any."""
        self.registry.unregister()
