"""Animation pipeline endpoints.

Scheduling runs inline. Draft batches and upscales run as background tasks
on the engine registered for ``(project_id, pipeline)``; clients follow them
through the status endpoint or the server-sent event stream.
"""

import logging
from collections.abc import AsyncGenerator
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, File, Form, UploadFile
from fastapi.responses import StreamingResponse

from animator.api.access import get_accessible_project, get_project_segment
from animator.api.deps import CurrentUser, DbSession
from animator.api.storage import read_upload
from animator.config import get_settings
from animator.exceptions import ArtifactNotFoundError, WorkflowBusyError
from animator.models.project import Project
from animator.schemas.animation import (
    RenderStartResponse,
    ScheduledImage,
    ScheduledSegment,
    ScheduleRequest,
    ScheduleResponse,
    UpscaleStartResponse,
    WorkflowStatusResponse,
)
from animator.services.beat_math import calculate_total_beats
from animator.services.event_bus import WorkflowEvent, event_bus
from animator.services.image_pool import DatabaseImageSource, ImagePoolAllocator, ShortfallPolicy
from animator.services.scheduler import AnimationConfig, OneShotAnimation, create_one_shot_animation
from animator.services.segment_pipeline import SegmentPipeline
from animator.services.workflow_engine import MediaUpload, WorkflowEngine, engine_registry

logger = logging.getLogger(__name__)

router = APIRouter()

DRAFT_PIPELINE = "drafts"
UPSCALE_PIPELINE = "upscale"

PipelineName = Literal["drafts", "upscale"]

# Channels with a batch in flight, including the gaps between segments
_running_channels: set[str] = set()


def build_animation_config(project: Project, overrides: ScheduleRequest | None = None) -> AnimationConfig:
    """Project settings with any request overrides applied."""
    values = {
        "bpm": project.bpm,
        "orientation": project.orientation,
        "total_duration_seconds": project.total_duration_seconds,
        "beat_interval": project.beat_interval,
        "frame_rate": project.frame_rate,
    }
    if overrides is not None:
        values.update(
            overrides.model_dump(
                exclude_unset=True, exclude_none=True, exclude={"shortfall_policy"}
            )
        )
    return AnimationConfig(**values)


async def _schedule(
    project: Project,
    user_id: UUID,
    db: DbSession,
    overrides: ScheduleRequest | None,
    policy: ShortfallPolicy,
) -> OneShotAnimation:
    config = build_animation_config(project, overrides)
    source = DatabaseImageSource(db, user_id, get_settings().public_base_url)
    return await create_one_shot_animation(config, ImagePoolAllocator(source, policy))


def _schedule_response(project_id: UUID, animation: OneShotAnimation) -> ScheduleResponse:
    config = animation.config
    return ScheduleResponse(
        project_id=project_id,
        bpm=config.bpm,
        orientation=config.orientation.value,
        total_duration_seconds=config.total_duration_seconds,
        beat_interval=config.beat_interval,
        frame_rate=config.frame_rate,
        total_beats=calculate_total_beats(config),
        images_requested=len(animation.segments) * config.images_per_segment,
        segments=[
            ScheduledSegment(
                index=segment.index,
                start_frame=segment.start_frame,
                duration_in_frames=segment.duration_in_frames,
                nominal_duration_in_frames=segment.nominal_duration_in_frames,
                images=[ScheduledImage(id=image.id, url=image.url) for image in segment.images],
            )
            for segment in animation.segments
        ],
    )


def _status_response(event: WorkflowEvent) -> WorkflowStatusResponse:
    return WorkflowStatusResponse(
        channel=event.channel,
        status=event.status,
        progress=event.progress,
        message=event.message,
    )


def _claim(engine: WorkflowEngine, pipeline: str) -> None:
    """Mark ``engine``'s channel as running and clear any earlier terminal state."""
    if engine.is_busy or engine.channel in _running_channels:
        raise WorkflowBusyError(pipeline)
    _running_channels.add(engine.channel)
    engine.reset_status()


async def _run_draft_batch(
    pipeline: SegmentPipeline,
    project_id: UUID,
    animation: OneShotAnimation,
    audio: MediaUpload,
) -> None:
    try:
        await pipeline.run_drafts(project_id, animation, audio)
    except Exception:
        logger.exception(f"Draft batch for project {project_id} failed")
    finally:
        _running_channels.discard(pipeline.engine.channel)


async def _run_upscale(
    pipeline: SegmentPipeline, segment_id: UUID, flow_video: MediaUpload | None
) -> None:
    try:
        await pipeline.run_upscale(segment_id, flow_video)
    except Exception:
        logger.exception(f"Upscale of segment {segment_id} failed")
    finally:
        _running_channels.discard(pipeline.engine.channel)


@router.post("/{project_id}/animation/schedule", response_model=ScheduleResponse)
async def schedule_animation(
    project_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    request: ScheduleRequest | None = None,
) -> ScheduleResponse:
    """Build the beat-aligned segment schedule without rendering anything."""
    project = await get_accessible_project(project_id, current_user.id, db)
    policy = ShortfallPolicy(request.shortfall_policy if request else ShortfallPolicy.TRUNCATE)
    animation = await _schedule(project, current_user.id, db, request, policy)
    return _schedule_response(project_id, animation)


@router.post("/{project_id}/animation/render", response_model=RenderStartResponse, status_code=202)
async def start_draft_render(
    project_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    background_tasks: BackgroundTasks,
    audio: UploadFile = File(...),
    shortfall_policy: str = Form("truncate", pattern="^(truncate|repeat|fail)$"),
) -> RenderStartResponse:
    """Schedule the project and render a draft for every segment in the background."""
    settings = get_settings()
    project = await get_accessible_project(project_id, current_user.id, db)
    audio_data = await read_upload(audio, settings.allowed_audio_types)

    animation = await _schedule(
        project, current_user.id, db, None, ShortfallPolicy(shortfall_policy)
    )
    engine = engine_registry.get(project_id, DRAFT_PIPELINE)
    _claim(engine, DRAFT_PIPELINE)

    pipeline = SegmentPipeline(engine, current_user.id)
    media = MediaUpload(
        data=audio_data,
        filename=audio.filename or "audio.mp3",
        content_type=audio.content_type,
    )
    background_tasks.add_task(_run_draft_batch, pipeline, project_id, animation, media)

    logger.info(
        f"Queued draft batch for project {project_id}: {len(animation.segments)} segments"
    )
    return RenderStartResponse(
        project_id=project_id,
        channel=engine.channel,
        segment_count=len(animation.segments),
        status=engine.status.value,
    )


@router.post(
    "/{project_id}/segments/{segment_id}/upscale",
    response_model=UpscaleStartResponse,
    status_code=202,
)
async def start_upscale(
    project_id: UUID,
    segment_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    background_tasks: BackgroundTasks,
    flow_video: UploadFile | None = File(None),
) -> UpscaleStartResponse:
    """Upscale one segment from its stored draft, optionally guided by a flow video."""
    await get_accessible_project(project_id, current_user.id, db)
    segment = await get_project_segment(project_id, segment_id, db)
    if segment.draft_video_id is None:
        raise ArtifactNotFoundError(f"Segment {segment_id} has no draft video")

    flow_media = None
    if flow_video is not None:
        flow_media = MediaUpload(
            data=await read_upload(flow_video, get_settings().allowed_video_types),
            filename=flow_video.filename or "flow.mp4",
            content_type=flow_video.content_type,
        )

    engine = engine_registry.get(project_id, UPSCALE_PIPELINE)
    _claim(engine, UPSCALE_PIPELINE)

    pipeline = SegmentPipeline(engine, current_user.id)
    background_tasks.add_task(_run_upscale, pipeline, segment_id, flow_media)
    return UpscaleStartResponse(
        segment_id=segment_id, channel=engine.channel, status=engine.status.value
    )


@router.get("/{project_id}/animation/{pipeline}/status", response_model=WorkflowStatusResponse)
async def get_workflow_status(
    project_id: UUID,
    pipeline: PipelineName,
    current_user: CurrentUser,
    db: DbSession,
) -> WorkflowStatusResponse:
    await get_accessible_project(project_id, current_user.id, db)
    engine = engine_registry.get(project_id, pipeline)
    return _status_response(engine.snapshot())


@router.get("/{project_id}/animation/{pipeline}/events")
async def stream_workflow_status(
    project_id: UUID,
    pipeline: PipelineName,
    current_user: CurrentUser,
    db: DbSession,
) -> StreamingResponse:
    """Server-sent events with every status change, starting from the current one."""
    await get_accessible_project(project_id, current_user.id, db)
    engine = engine_registry.get(project_id, pipeline)

    async def events() -> AsyncGenerator[str, None]:
        yield engine.snapshot().to_sse()
        async for event in event_bus.subscribe(engine.channel):
            yield event.to_sse()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/{project_id}/animation/{pipeline}/cancel", response_model=WorkflowStatusResponse)
async def cancel_workflow(
    project_id: UUID,
    pipeline: PipelineName,
    current_user: CurrentUser,
    db: DbSession,
) -> WorkflowStatusResponse:
    """Cancel the running job. A draft batch stops before its next segment."""
    await get_accessible_project(project_id, current_user.id, db)
    engine = engine_registry.get(project_id, pipeline)
    await engine.cancel_workflow()
    return _status_response(engine.snapshot())


@router.post("/{project_id}/animation/{pipeline}/reset", response_model=WorkflowStatusResponse)
async def reset_workflow(
    project_id: UUID,
    pipeline: PipelineName,
    current_user: CurrentUser,
    db: DbSession,
) -> WorkflowStatusResponse:
    await get_accessible_project(project_id, current_user.id, db)
    engine = engine_registry.get(project_id, pipeline)
    if engine.is_busy or engine.channel in _running_channels:
        raise WorkflowBusyError(pipeline)
    engine.reset_status()
    return _status_response(engine.snapshot())
