"""Command bridge: dispatcher, marshaling, service loop and client."""

from rfcbridge.bridge.client import BridgeCallError, BridgeClient
from rfcbridge.bridge.dispatcher import CommandDispatcher
from rfcbridge.bridge.protocol import CallRequest, CallResult, CommandRequest, Envelope, FieldDiagnostic
from rfcbridge.bridge.registry import DestinationRegistry
from rfcbridge.bridge.service import BridgeService

__all__ = [
    "BridgeCallError",
    "BridgeClient",
    "BridgeService",
    "CallRequest",
    "CallResult",
    "CommandDispatcher",
    "CommandRequest",
    "DestinationRegistry",
    "Envelope",
    "FieldDiagnostic",
]
