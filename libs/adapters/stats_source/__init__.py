from .fakes import FakePeerConnection, synthetic_report

__all__ = ["FakePeerConnection", "synthetic_report"]
