"""
Observer <-> host channel.

Typed request protocol, ports, the reconnecting observer client and the
host dispatcher/server.
"""

from .protocol import Ping, SaveSnapshot, ResetConvo, SetClientId, parse_request, make_response
from .transport import Port, LocalPort, local_port_pair, WebSocketConnector
from .client import PortClient
from .host import HostDispatcher

__all__ = [
    # Protocol
    "Ping",
    "SaveSnapshot",
    "ResetConvo",
    "SetClientId",
    "parse_request",
    "make_response",
    # Transport
    "Port",
    "LocalPort",
    "local_port_pair",
    "WebSocketConnector",
    # Endpoints
    "PortClient",
    "HostDispatcher",
]
