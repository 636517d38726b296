from animator.schemas.folder import FolderCreate, FolderMove, FolderResponse, FolderUpdate
from animator.schemas.image import ImageResponse
from animator.schemas.project import ProjectCreate, ProjectResponse, ProjectUpdate
from animator.schemas.segment import SegmentCreate, SegmentResponse, SegmentUpdate
from animator.schemas.track import TrackCreate, TrackResponse, TrackUpdate
from animator.schemas.video import VideoResponse
