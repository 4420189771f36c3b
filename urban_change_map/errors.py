"""Domain errors raised by the pipeline."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class StateComputationError(PipelineError):
    """Transformation state could not be computed for a place."""

    error_code = "STATE_ERROR"


class AggregationError(PipelineError):
    """The heatmap rebuild failed; the previous snapshot is left in place."""

    error_code = "AGGREGATION_ERROR"
