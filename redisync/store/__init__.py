"""Store package initialization"""

from .connection import create_client, connect, close, store_errors

__all__ = ['create_client', 'connect', 'close', 'store_errors']
