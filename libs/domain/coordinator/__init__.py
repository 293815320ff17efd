from .service import Coordinator, CoordinatorStatus

__all__ = ["Coordinator", "CoordinatorStatus"]
