from .bridge import RelayBridge

__all__ = ["RelayBridge"]
