"""Custom exceptions for the animator backend.

These exceptions integrate with the API error handlers, providing
machine-readable error codes and suggested recovery actions.
"""

from typing import Any

from animator.constants.error_codes import get_error_spec
from animator.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction


class AnimatorError(Exception):
    """Base exception for all animator application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)
        retryable = spec.get("retryable", False)

        suggested_actions: list[SuggestedAction] = []
        if "suggested_action" in spec:
            action = SuggestedAction(
                action=spec["suggested_action"],
                endpoint=spec.get("suggested_endpoint"),
                parameters=spec.get("parameters", {}),
            )
            suggested_actions.append(action)

        suggested_fix = self.suggested_fix or spec.get("suggested_fix")

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=retryable,
            suggested_fix=suggested_fix,
            suggested_actions=suggested_actions,
        )


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class ResourceNotFoundError(AnimatorError):
    """Base class for resource not found errors."""

    status_code = 404


class ProjectNotFoundError(ResourceNotFoundError):
    """Project not found."""

    code = "PROJECT_NOT_FOUND"
    message = "Project not found"

    def __init__(self, project_id: str | None = None):
        message = f"Project not found: {project_id}" if project_id else self.message
        location = ErrorLocation(project_id=str(project_id)) if project_id else None
        super().__init__(message, location=location)


class TrackNotFoundError(ResourceNotFoundError):
    """Track not found."""

    code = "TRACK_NOT_FOUND"
    message = "Track not found"

    def __init__(self, track_id: str | None = None):
        message = f"Track not found: {track_id}" if track_id else self.message
        location = ErrorLocation(track_id=str(track_id)) if track_id else None
        super().__init__(message, location=location)


class SegmentNotFoundError(ResourceNotFoundError):
    """Segment not found."""

    code = "SEGMENT_NOT_FOUND"
    message = "Segment not found"

    def __init__(self, segment_id: str | None = None):
        message = f"Segment not found: {segment_id}" if segment_id else self.message
        location = ErrorLocation(segment_id=str(segment_id)) if segment_id else None
        super().__init__(message, location=location)


class ImageNotFoundError(ResourceNotFoundError):
    """Image not found."""

    code = "IMAGE_NOT_FOUND"
    message = "Image not found"

    def __init__(self, identifier: str | None = None):
        message = f"Image not found: {identifier}" if identifier else self.message
        super().__init__(message)


class VideoNotFoundError(ResourceNotFoundError):
    """Video not found."""

    code = "VIDEO_NOT_FOUND"
    message = "Video not found"

    def __init__(self, identifier: str | None = None):
        message = f"Video not found: {identifier}" if identifier else self.message
        super().__init__(message)


class FolderNotFoundError(ResourceNotFoundError):
    """Folder not found."""

    code = "FOLDER_NOT_FOUND"
    message = "Folder not found"

    def __init__(self, folder_id: str | None = None):
        message = f"Folder not found: {folder_id}" if folder_id else self.message
        super().__init__(message)


class ArtifactNotFoundError(ResourceNotFoundError):
    """A render artifact the caller depends on does not exist."""

    code = "ARTIFACT_NOT_FOUND"
    message = "Render artifact not found"


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(AnimatorError):
    """Base class for validation errors."""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidAnimationConfigError(ValidationError):
    """Animation parameters rejected at construction time."""

    code = "INVALID_ANIMATION_CONFIG"
    message = "Invalid animation configuration"

    def __init__(self, message: str | None = None, *, field: str | None = None, value: Any = None):
        msg = message or self.message
        if field and value is not None and message is None:
            msg = f"Invalid value for '{field}': {value}"
        location = ErrorLocation(field=field) if field else None
        super().__init__(msg, location=location)


class TrackOutOfBoundsError(ValidationError):
    """Track would extend past the end of the project."""

    code = "TRACK_OUT_OF_BOUNDS"
    message = "Track is out of bounds"

    def __init__(
        self,
        *,
        start_beat: float | None = None,
        duration_beats: float | None = None,
        total_beats: int | None = None,
        track_id: str | None = None,
    ):
        msg = self.message
        if start_beat is not None and duration_beats is not None and total_beats is not None:
            msg = (
                f"Track spans beats {start_beat} to {start_beat + duration_beats} "
                f"but the project has {total_beats} beats"
            )
        location = ErrorLocation(track_id=str(track_id)) if track_id else None
        super().__init__(msg, location=location)


class ImagePoolShortfallError(ValidationError):
    """The image source returned fewer images than the schedule needs."""

    code = "IMAGE_POOL_SHORTFALL"
    message = "Not enough images to fill the animation"

    def __init__(self, requested: int | None = None, received: int | None = None):
        msg = self.message
        if requested is not None and received is not None:
            msg = f"Requested {requested} images but the image source returned {received}"
        super().__init__(msg)


class FolderCycleError(ValidationError):
    """Folder move would create a cycle."""

    code = "FOLDER_CYCLE"
    message = "Cannot move a folder into its own subtree"


class FolderTooDeepError(ValidationError):
    """Folder hierarchy exceeds the depth guard."""

    code = "FOLDER_TOO_DEEP"
    message = "Folder hierarchy is too deep"

    def __init__(self, max_depth: int | None = None):
        msg = f"Folder hierarchy exceeds maximum depth of {max_depth}" if max_depth else self.message
        super().__init__(msg)


class UnsupportedMediaTypeError(ValidationError):
    """Uploaded file has a content type we do not accept."""

    code = "UNSUPPORTED_MEDIA_TYPE"
    status_code = 415
    message = "Unsupported media type"

    def __init__(self, content_type: str | None = None):
        msg = f"Unsupported media type: {content_type}" if content_type else self.message
        super().__init__(msg)


# =============================================================================
# Conflict Errors (409)
# =============================================================================


class ConflictError(AnimatorError):
    """Base class for conflict errors."""

    code = "CONFLICT"
    status_code = 409


class WorkflowBusyError(ConflictError):
    """A workflow engine already has a job in flight."""

    code = "WORKFLOW_BUSY"
    message = "A render workflow is already running for this pipeline"

    def __init__(self, pipeline: str | None = None):
        msg = f"The {pipeline} pipeline is already running" if pipeline else self.message
        location = ErrorLocation(pipeline=pipeline) if pipeline else None
        super().__init__(msg, location=location)


# =============================================================================
# Render Service Errors (502)
# =============================================================================


class RenderServiceError(AnimatorError):
    """Transport-level failure talking to the render service."""

    code = "RENDER_SERVICE_ERROR"
    status_code = 502
    message = "Render service request failed"


class RenderJobError(RenderServiceError):
    """The render service accepted the job but reported a failure."""

    code = "RENDER_JOB_FAILED"
    message = "Render job failed"

    def __init__(self, message: str | None = None, *, job_handle: str | None = None):
        self.job_handle = job_handle
        super().__init__(message)


# =============================================================================
# System Errors (500)
# =============================================================================


class InternalError(AnimatorError):
    """Internal server error."""

    code = "INTERNAL_ERROR"
    status_code = 500
    message = "Internal server error"


class StorageError(AnimatorError):
    """Storage error."""

    code = "STORAGE_ERROR"
    status_code = 500
    message = "Storage error"
