"""Quality-gate pipeline: outline normalization, gates, refinement loops, run controller."""

from quality_gate.pipeline.controller import RunController
from quality_gate.pipeline.interfaces import Collaborators
from quality_gate.pipeline.outline import normalize_outline

__all__ = ["RunController", "Collaborators", "normalize_outline"]
