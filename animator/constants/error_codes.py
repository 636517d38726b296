"""Error codes dictionary.

This is the single source of truth for all error codes, their retryability,
and suggested recovery actions. Used by exception handlers to generate
machine-readable error responses.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_endpoint: str
    suggested_fix: str
    parameters: dict[str, Any]


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Resource errors (retryable after refresh)
    # ==========================================================================
    "PROJECT_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
        "suggested_endpoint": "GET /api/projects",
    },
    "TRACK_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
        "suggested_endpoint": "GET /api/projects/{project_id}/tracks",
    },
    "SEGMENT_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
        "suggested_endpoint": "GET /api/projects/{project_id}/segments",
    },
    "IMAGE_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
        "suggested_endpoint": "GET /api/images",
    },
    "VIDEO_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
        "suggested_endpoint": "GET /api/videos",
    },
    "FOLDER_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
        "suggested_endpoint": "GET /api/folders",
    },
    "ARTIFACT_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Run the draft pass for this segment before requesting an upscale",
    },
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "INVALID_ANIMATION_CONFIG": {
        "retryable": False,
        "suggested_fix": "bpm, frame_rate and total_duration_seconds must be positive; beat_interval must be 4 or 8",
    },
    "TRACK_OUT_OF_BOUNDS": {
        "retryable": False,
        "suggested_fix": "start_beat + duration_beats must not exceed the project's total beats",
    },
    "IMAGE_POOL_SHORTFALL": {
        "retryable": True,
        "suggested_action": "upload_images",
        "suggested_endpoint": "POST /api/images",
    },
    "FOLDER_CYCLE": {
        "retryable": False,
        "suggested_fix": "A folder cannot be moved into itself or one of its descendants",
    },
    "FOLDER_TOO_DEEP": {
        "retryable": False,
    },
    "UNSUPPORTED_MEDIA_TYPE": {
        "retryable": False,
    },
    # ==========================================================================
    # Conflict errors
    # ==========================================================================
    "WORKFLOW_BUSY": {
        "retryable": True,
        "suggested_action": "wait_and_retry",
        "suggested_endpoint": "GET /api/projects/{project_id}/animation/{pipeline}/status",
        "parameters": {"delay_ms": 5000},
    },
    # ==========================================================================
    # Render service errors
    # ==========================================================================
    "RENDER_SERVICE_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 5000, "max_retries": 2},
    },
    "RENDER_JOB_FAILED": {
        "retryable": False,
    },
    # ==========================================================================
    # Authentication/Authorization errors
    # ==========================================================================
    "UNAUTHORIZED": {
        "retryable": False,
    },
    "FORBIDDEN": {
        "retryable": False,
    },
    # ==========================================================================
    # System errors (retryable with backoff)
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "STORAGE_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    # ==========================================================================
    # Request errors
    # ==========================================================================
    "BAD_REQUEST": {
        "retryable": False,
    },
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "NOT_FOUND": {
        "retryable": False,
    },
    "CONFLICT": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})
