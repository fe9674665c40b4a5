from .apps import Http402Server
from .facilitator import FacilitatorClient
from .flows import setup_event_bus
from .security import NonceStore

__all__ = [
    "Http402Server",
    "FacilitatorClient",
    "setup_event_bus",
    "NonceStore",
]
