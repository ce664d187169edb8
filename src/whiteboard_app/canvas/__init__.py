from .strokes import Canvas, Segment, StrokeAccumulator

__all__ = ["Canvas", "Segment", "StrokeAccumulator"]
