"""
pastelup - Pastel node installer and masternode lifecycle manager
"""

__version__ = "0.1.0"

from .coldhot import ColdHotRunner
from .core import NodeStarter
from .errors import PastelupError
from .installer import Installer

__all__ = ["ColdHotRunner", "Installer", "NodeStarter", "PastelupError"]
