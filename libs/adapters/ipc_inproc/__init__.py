from .relay import InprocRelayPort

__all__ = ["InprocRelayPort"]
