from .service import StatsSampler, TrackedConnection, new_connection_id

__all__ = ["StatsSampler", "TrackedConnection", "new_connection_id"]
