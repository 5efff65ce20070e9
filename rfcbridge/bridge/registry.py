"""Destination registry: one named destination slot for the bridge lifetime."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from rfcbridge.config.schema import DestinationConfig
from rfcbridge.remote.contracts import RemoteConnector, RemoteDestination, SystemAttributes
from rfcbridge.utils.exceptions import NotConnectedError


@dataclass(slots=True)
class RegisteredDestination:
    """The active slot: config, live destination and the identity seen at connect."""

    name: str
    config: DestinationConfig
    destination: RemoteDestination
    attributes: SystemAttributes


class DestinationRegistry:
    """Unregistered -> Registered(connected) -> Unregistered."""

    def __init__(self, connector: RemoteConnector, name: str = "DEFAULT"):
        self.connector = connector
        self.name = name
        self._active: RegisteredDestination | None = None

    @property
    def connected(self) -> bool:
        return self._active is not None

    @property
    def active(self) -> RegisteredDestination | None:
        return self._active

    def register(self, config: DestinationConfig) -> SystemAttributes:
        """Open and probe a destination; on probe failure nothing stays registered."""
        if self._active is not None:
            logger.info("Replacing registered destination {} ({})", self.name, self._active.config.host)
            self.unregister()
        destination = self.connector.open(config)
        try:
            destination.ping()
            attributes = destination.system_attributes()
        except Exception:
            self._close_quietly(destination)
            raise
        self._active = RegisteredDestination(
            name=self.name,
            config=config,
            destination=destination,
            attributes=attributes,
        )
        logger.info(
            "Registered destination {} host={} client={} system={}",
            self.name,
            config.host,
            config.client,
            attributes.system_id,
        )
        return attributes

    def require(self) -> RemoteDestination:
        """The live destination, or a state error when nothing is registered."""
        if self._active is None:
            raise NotConnectedError()
        return self._active.destination

    def ping(self) -> None:
        self.require().ping()

    def unregister(self) -> bool:
        """Drop the slot; returns False when it was already empty."""
        active, self._active = self._active, None
        if active is None:
            return False
        self._close_quietly(active.destination)
        logger.info("Unregistered destination {}", self.name)
        return True

    @staticmethod
    def _close_quietly(destination: RemoteDestination) -> None:
        try:
            destination.close()
        except Exception as exc:
            logger.warning("Closing destination failed: {}", exc)
