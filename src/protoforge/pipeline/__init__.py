"""Pipeline coordination."""

from .coordinator import STAGES, PipelineCoordinator, PipelineReport, PipelineState, run_pipelines

__all__ = ["PipelineCoordinator", "PipelineReport", "PipelineState", "STAGES", "run_pipelines"]
