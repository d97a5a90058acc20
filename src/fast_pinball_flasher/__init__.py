"""
FAST Pinball Flasher - firmware update utility for FAST Pinball boards

Finds the NET and EXP buses, lists attached boards, and flashes and
verifies firmware from the local firmware catalog.
"""

__version__ = "0.1.0"

from fast_pinball_flasher.catalog import FirmwareCatalog
from fast_pinball_flasher.discovery import PortDiscovery
from fast_pinball_flasher.protocol import ExpChannel, NetChannel

__all__ = [
    "FirmwareCatalog",
    "PortDiscovery",
    "ExpChannel",
    "NetChannel",
    "__version__",
]
