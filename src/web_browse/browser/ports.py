"""Local port negotiation for the remote-debugging endpoint."""

from __future__ import annotations

import logging
import socket

logger = logging.getLogger(__name__)

PORT_SEARCH_SPAN = 25
_LOOPBACK = "127.0.0.1"


def is_port_available(port: int, host: str = _LOOPBACK) -> bool:
    """Return True if *port* can be bound on *host* right now."""
    if not isinstance(port, int) or port <= 0 or port > 65535:
        return False
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def get_ephemeral_port(host: str = _LOOPBACK) -> int:
    """Ask the OS for a free ephemeral port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def choose_available_port(preferred: int, host: str = _LOOPBACK) -> int:
    """Return *preferred* if free, else the first free port in ``preferred+1 .. preferred+25``,
    else an OS-assigned ephemeral port."""
    if is_port_available(preferred, host):
        return preferred

    for offset in range(1, PORT_SEARCH_SPAN + 1):
        candidate = preferred + offset
        if is_port_available(candidate, host):
            logger.info("Port %d busy; using %d", preferred, candidate)
            return candidate

    port = get_ephemeral_port(host)
    logger.info("Ports %d-%d busy; using ephemeral port %d", preferred, preferred + PORT_SEARCH_SPAN, port)
    return port
