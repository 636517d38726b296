"""Segment pipeline driver.

Feeds the segments of a OneShotAnimation through a workflow engine one at a
time, stores each draft video and records it as a Segment. A second,
separately triggered pass upscales one stored segment from its draft.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from animator.config import get_settings
from animator.exceptions import ArtifactNotFoundError, ImageNotFoundError, SegmentNotFoundError
from animator.models.database import async_session_maker
from animator.models.image import Image
from animator.models.segment import Segment, SegmentImage
from animator.models.video import Video, VideoKind
from animator.services.render_client import RenderServiceClient
from animator.services.scheduler import AnimationSegment, OneShotAnimation
from animator.services.storage_service import StorageService, get_storage_service, video_storage_key
from animator.services.workflow_engine import MediaUpload, RenderJob, WorkflowEngine
from animator.services.workflow_templates import (
    DRAFT_OUTPUT_NODE,
    UPSCALE_OUTPUT_NODE,
    build_draft_graph,
    build_upscale_graph,
    extract_video_output,
)

logger = logging.getLogger(__name__)

ImageLoader = Callable[[str], Awaitable[MediaUpload]]

AUDIO_CACHE_KEY = "__audio__"


@dataclass
class DraftBatchReport:
    """Outcome of one draft batch."""

    project_id: uuid.UUID
    total: int
    created_segment_ids: list[uuid.UUID] = field(default_factory=list)
    failed_indices: list[int] = field(default_factory=list)
    cancelled: bool = False

    @property
    def completed(self) -> int:
        return len(self.created_segment_ids)


class UploadCache:
    """Names the render service assigned to media staged during one batch.

    Keyed by image id, so an image shared by consecutive segments is
    uploaded once.
    """

    def __init__(self) -> None:
        self._names: dict[str, str] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._names

    def __len__(self) -> int:
        return len(self._names)

    def get(self, key: str) -> str | None:
        return self._names.get(key)

    async def stage(
        self,
        client: RenderServiceClient,
        key: str,
        load: Callable[[], Awaitable[MediaUpload]],
    ) -> str:
        """Return the cached name for ``key``, uploading through ``client`` on a miss."""
        name = self._names.get(key)
        if name is not None:
            return name
        media = await load()
        name = await client.upload_media(media.data, media.filename, media.content_type)
        self._names[key] = name
        return name


@dataclass
class _RunContext:
    """State shared between one run's before-submit and completion hooks."""

    client: RenderServiceClient | None = None
    artifact: bytes | None = None
    artifact_name: str | None = None


def segment_message_decorator(index: int, total: int) -> Callable[[str], str]:
    def decorate(message: str) -> str:
        return f"[Segment {index + 1}/{total}] {message}"

    return decorate


class SegmentPipeline:
    """Runs draft and upscale passes for one user's project."""

    def __init__(
        self,
        engine: WorkflowEngine,
        user_id: uuid.UUID,
        *,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        storage: StorageService | None = None,
        image_loader: ImageLoader | None = None,
    ) -> None:
        self.engine = engine
        self.user_id = user_id
        self._session_factory = session_factory
        self._storage = storage or get_storage_service()
        self._image_loader = image_loader or self._load_image_from_storage
        self._settings = get_settings()

    # =========================================================================
    # Draft pass
    # =========================================================================

    async def run_drafts(
        self,
        project_id: uuid.UUID,
        animation: OneShotAnimation,
        audio: MediaUpload,
        *,
        decorate: bool = True,
    ) -> DraftBatchReport:
        """Render every segment in order and persist the drafts.

        Segment ``i + 1`` is submitted only after segment ``i`` resolved. A
        failing segment is logged and skipped; cancellation ends the batch.

        Args:
            project_id: Project the segments belong to
            animation: Schedule to render
            audio: Soundtrack staged once and fed to every segment
            decorate: Prefix status messages with the segment position

        Returns:
            DraftBatchReport with created segment ids and failed indices
        """
        segments = animation.segments
        report = DraftBatchReport(project_id=project_id, total=len(segments))
        cache = UploadCache()

        logger.info(f"Starting draft batch for project {project_id}: {len(segments)} segments")

        for segment in segments:
            if self.engine.is_cancelled:
                report.cancelled = True
                break
            self.engine.reset_status()

            ctx = _RunContext()
            job = RenderJob(graph={})
            try:
                result = await self.engine.run_workflow(
                    job,
                    on_before_submit=self._draft_before_submit(
                        ctx, cache, animation, segment, audio
                    ),
                    on_complete=self._fetch_artifact_hook(ctx, DRAFT_OUTPUT_NODE),
                    message_decorator=(
                        segment_message_decorator(segment.index, len(segments)) if decorate else None
                    ),
                )
            except Exception as e:
                logger.error(f"Draft render failed for segment {segment.index}: {e}")
                report.failed_indices.append(segment.index)
                continue

            if result is None:
                logger.info(f"Draft batch for project {project_id} cancelled at segment {segment.index}")
                report.cancelled = True
                break

            try:
                segment_id = await self._store_draft(project_id, segment, ctx)
            except Exception as e:
                logger.exception(f"Failed to store draft for segment {segment.index}: {e}")
                report.failed_indices.append(segment.index)
                continue

            report.created_segment_ids.append(segment_id)

        logger.info(
            f"Draft batch for project {project_id} finished: {report.completed}/{report.total} "
            f"stored, failed={report.failed_indices}, cancelled={report.cancelled}"
        )
        return report

    def _draft_before_submit(
        self,
        ctx: _RunContext,
        cache: UploadCache,
        animation: OneShotAnimation,
        segment: AnimationSegment,
        audio: MediaUpload,
    ) -> Callable[[RenderServiceClient, RenderJob], Awaitable[None]]:
        async def before_submit(client: RenderServiceClient, job: RenderJob) -> None:
            ctx.client = client
            image_names = [
                await cache.stage(client, image.id, lambda image_id=image.id: self._image_loader(image_id))
                for image in segment.images
            ]
            audio_name = await cache.stage(client, AUDIO_CACHE_KEY, _returning(audio))
            job.graph = build_draft_graph(
                start_frame=segment.start_frame,
                duration=segment.duration_in_frames,
                image_names=image_names,
                audio_name=audio_name,
                orientation=animation.config.orientation.value,
                frame_rate=int(animation.config.frame_rate),
                output_root=self._settings.render_output_prefix,
            )

        return before_submit

    async def _store_draft(
        self, project_id: uuid.UUID, segment: AnimationSegment, ctx: _RunContext
    ) -> uuid.UUID:
        video = await self._store_video(project_id, VideoKind.DRAFT, ctx)
        async with self._removing_on_failure(video.storage_key), self._session_factory() as db:
            db.add(video)
            await db.flush()
            record = Segment(
                project_id=project_id,
                start_frame=segment.start_frame,
                duration=segment.duration_in_frames,
                nominal_duration=segment.nominal_duration_in_frames,
                draft_video_id=video.id,
                images=[
                    SegmentImage(image_id=image.id, position=position)
                    for position, image in enumerate(segment.images)
                ],
            )
            db.add(record)
            await db.commit()
            logger.info(f"Stored draft segment {record.id} at frame {segment.start_frame}")
            return record.id

    # =========================================================================
    # Upscale pass
    # =========================================================================

    async def run_upscale(
        self, segment_id: uuid.UUID, flow_video: MediaUpload | None = None
    ) -> uuid.UUID | None:
        """Upscale one stored segment from its draft video.

        Replaces any earlier upscale of the segment.

        Returns:
            The new upscale video id, or None if the run was cancelled

        Raises:
            SegmentNotFoundError: If the segment does not exist
            ArtifactNotFoundError: If the segment has no draft video
        """
        async with self._session_factory() as db:
            segment = await db.get(Segment, segment_id)
            if segment is None:
                raise SegmentNotFoundError(str(segment_id))
            if segment.draft_video_id is None:
                raise ArtifactNotFoundError(f"Segment {segment_id} has no draft video")
            draft = await db.get(Video, segment.draft_video_id)
            if draft is None:
                raise ArtifactNotFoundError(f"Draft video for segment {segment_id} is missing")
            project_id = segment.project_id
            start_frame = segment.start_frame
            duration = segment.duration
            draft_media = MediaUpload(
                data=await self._storage.download_bytes(draft.storage_key),
                filename=draft.filename,
                content_type=draft.content_type,
            )

        if not self.engine.is_cancelled:
            self.engine.reset_status()

        ctx = _RunContext()

        async def before_submit(client: RenderServiceClient, job: RenderJob) -> None:
            ctx.client = client
            draft_name = await client.upload_media(
                draft_media.data, draft_media.filename, draft_media.content_type
            )
            flow_name = None
            if flow_video is not None:
                flow_name = await client.upload_media(
                    flow_video.data, flow_video.filename, flow_video.content_type
                )
            job.graph = build_upscale_graph(
                draft_name=draft_name,
                start_frame=start_frame,
                duration=duration,
                flow_name=flow_name,
                output_root=self._settings.render_output_prefix,
            )

        result = await self.engine.run_workflow(
            RenderJob(graph={}),
            on_before_submit=before_submit,
            on_complete=self._fetch_artifact_hook(ctx, UPSCALE_OUTPUT_NODE),
        )
        if result is None:
            logger.info(f"Upscale of segment {segment_id} cancelled")
            return None

        return await self._store_upscale(segment_id, project_id, ctx)

    async def _store_upscale(
        self, segment_id: uuid.UUID, project_id: uuid.UUID, ctx: _RunContext
    ) -> uuid.UUID:
        video = await self._store_video(project_id, VideoKind.UPSCALE, ctx)
        previous_key = None
        async with self._removing_on_failure(video.storage_key), self._session_factory() as db:
            segment = await db.get(Segment, segment_id)
            if segment is None:
                # Deleted while rendering
                raise SegmentNotFoundError(str(segment_id))

            db.add(video)
            await db.flush()

            previous_id = segment.upscale_video_id
            segment.upscale_video_id = video.id
            if previous_id is not None:
                previous = await db.get(Video, previous_id)
                if previous is not None:
                    previous_key = previous.storage_key
                    await db.delete(previous)

            await db.commit()

        # Old bytes go only once no committed row points at them
        if previous_key is not None:
            self._delete_stored(previous_key)
        logger.info(f"Stored upscale video {video.id} for segment {segment_id}")
        return video.id

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def _fetch_artifact_hook(
        self, ctx: _RunContext, output_node: str
    ) -> Callable[[dict[str, Any]], Awaitable[None]]:
        async def on_complete(result: dict[str, Any]) -> None:
            output = extract_video_output(result, output_node)
            ctx.artifact_name = output.filename
            ctx.artifact = await ctx.client.fetch_artifact(
                output.filename, output.subfolder, output.folder_type
            )

        return on_complete

    async def _store_video(self, project_id: uuid.UUID, kind: VideoKind, ctx: _RunContext) -> Video:
        if ctx.artifact is None:
            raise ArtifactNotFoundError("Render finished without a downloadable artifact")

        identifier = uuid.uuid4().hex
        filename = ctx.artifact_name or f"{identifier}.mp4"
        storage_key = video_storage_key(str(self.user_id), kind.value, identifier, filename)
        await self._storage.upload_bytes(storage_key, ctx.artifact, "video/mp4")

        return Video(
            user_id=self.user_id,
            project_id=project_id,
            identifier=identifier,
            filename=filename,
            content_type="video/mp4",
            storage_key=storage_key,
            size=len(ctx.artifact),
            kind=kind.value,
        )

    @asynccontextmanager
    async def _removing_on_failure(self, storage_key: str) -> AsyncIterator[None]:
        """Delete a freshly uploaded object if recording it in the database fails."""
        try:
            yield
        except Exception:
            self._delete_stored(storage_key)
            raise

    def _delete_stored(self, storage_key: str) -> None:
        try:
            self._storage.delete_file(storage_key)
        except Exception as e:
            logger.warning(f"Failed to delete stored file {storage_key}: {e}")

    async def _load_image_from_storage(self, image_id: str) -> MediaUpload:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Image).where(Image.identifier == image_id, Image.user_id == self.user_id)
            )
            image = result.scalar_one_or_none()
            if image is None:
                raise ImageNotFoundError(image_id)
            storage_key, filename, content_type = image.storage_key, image.filename, image.content_type

        return MediaUpload(
            data=await self._storage.download_bytes(storage_key),
            filename=filename,
            content_type=content_type,
        )


def _returning(media: MediaUpload) -> Callable[[], Awaitable[MediaUpload]]:
    async def load() -> MediaUpload:
        return media

    return load
