from animator.models.api_key import APIKey
from animator.models.base import Base
from animator.models.folder import Folder
from animator.models.image import Image
from animator.models.project import Project
from animator.models.segment import Segment, SegmentImage
from animator.models.track import Track
from animator.models.user import User
from animator.models.video import Video, VideoKind

__all__ = [
    "Base",
    "User",
    "APIKey",
    "Project",
    "Track",
    "Segment",
    "SegmentImage",
    "Image",
    "Video",
    "VideoKind",
    "Folder",
]
