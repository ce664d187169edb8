from .pointer import PointerTracker
from .projection import ProjectionEngine, ProjectionResult, round_half_up

__all__ = ["PointerTracker", "ProjectionEngine", "ProjectionResult", "round_half_up"]
