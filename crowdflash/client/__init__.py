"""
CrowdFlash device client: realtime socket wrapper and flash overlay state machine.
"""

from __future__ import annotations

from .flashStateMachine import FlashSnapshot, FlashState, FlashStateMachine
from .socketClient import FlashClient

__all__ = [
    "FlashClient",
    "FlashSnapshot",
    "FlashState",
    "FlashStateMachine",
]
