"""Timer package initialization"""

from .hashed_wheel import HashedWheelTimer, Timeout, TimeoutState

__all__ = ['HashedWheelTimer', 'Timeout', 'TimeoutState']
