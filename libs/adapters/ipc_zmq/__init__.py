from .relay import ZmqRelayPort

__all__ = ["ZmqRelayPort"]
