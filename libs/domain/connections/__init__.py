from .registry import ConnectionRecord, ConnectionRegistry

__all__ = ["ConnectionRecord", "ConnectionRegistry"]
