from .breaker import BreakerRegistry, BreakerSnapshot, CircuitBreaker, CircuitStatus

__all__ = ["CircuitBreaker", "CircuitStatus", "BreakerSnapshot", "BreakerRegistry"]
