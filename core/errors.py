"""
Exception hierarchy for the recognition pipeline.

Only DetectorInitError and CameraUnavailableError are fatal; everything
else is caught at the component that owns the failure and degraded to a
pass-through or local fallback.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class DetectorInitError(PipelineError):
    """Landmark models could not be created. Requires a full restart."""


class CameraUnavailableError(PipelineError):
    """Video device could not be opened (missing or permission denied)."""


class DatasetFormatError(PipelineError):
    """An imported dataset document is malformed and was rejected."""


class DatasetBackendError(PipelineError):
    """The dataset backend was unreachable or returned an invalid response."""


class CollectionError(PipelineError):
    """An example could not be captured (empty label, no hand in frame)."""
