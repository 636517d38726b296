"""Job-graph templates for the render service.

Templates live in ``animator/workflows/*.json`` in the service's API graph
format. Builders return a fresh deep copy with the per-job parameters
injected; the cached originals are never mutated.
"""

import copy
import json
import random
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from animator.exceptions import RenderJobError, ValidationError

WORKFLOWS_DIR = Path(__file__).resolve().parent.parent / "workflows"

# Draft graph node ids
DRAFT_IMAGE_NODES = ("56", "58", "267", "372", "373", "374", "375", "376")
DRAFT_AUDIO_NODE = "294"
DRAFT_START_FRAME_NODE = "516"
DRAFT_DURATION_NODE = "518"
DRAFT_AUDIO_CROP_NODE = "520"
DRAFT_PEAKS_NODE = "483"
DRAFT_LATENT_NODE = "120"
DRAFT_SAMPLER_NODE = "200"
DRAFT_OUTPUT_NODE = "410"
FINAL_OUTPUT_NODE = "412"

# Upscale graph node ids
UPSCALE_DRAFT_NODE = "1"
UPSCALE_FLOW_NODE = "2"
UPSCALE_CONTROLNET_NODE = "12"
UPSCALE_SAMPLER_NODE = "16"
UPSCALE_OUTPUT_NODE = "20"

PEAKS_MIN_DISTANCE = 16

# (width, height) of the draft latent per orientation
DRAFT_DIMENSIONS = {
    "portrait": (512, 896),
    "landscape": (896, 512),
}


@dataclass(frozen=True)
class VideoOutput:
    """Location of a file produced by a job on the render service."""

    filename: str
    subfolder: str = ""
    folder_type: str = "output"


@lru_cache
def _load_raw(name: str) -> dict[str, Any]:
    path = WORKFLOWS_DIR / f"{name}.json"
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_template(name: str) -> dict[str, Any]:
    """Return a mutable copy of the named template."""
    return copy.deepcopy(_load_raw(name))


def _output_prefix(root: str, phase: str, start_frame: int, duration: int) -> str:
    return f"{root}/{phase}/{start_frame}-{duration}"


def build_draft_graph(
    *,
    start_frame: int,
    duration: int,
    image_names: list[str],
    audio_name: str,
    orientation: str = "portrait",
    frame_rate: int = 24,
    output_root: str = "animator",
    seed: int | None = None,
) -> dict[str, Any]:
    """Draft job for one segment.

    Image slots are filled in order; with fewer images than slots the images
    repeat from the start.

    Raises:
        ValidationError: If there are no images to render
    """
    if not image_names:
        raise ValidationError(f"Segment at frame {start_frame} has no images to render")

    graph = load_template("draft")

    for slot, node_id in enumerate(DRAFT_IMAGE_NODES):
        graph[node_id]["inputs"]["image"] = image_names[slot % len(image_names)]
    graph[DRAFT_AUDIO_NODE]["inputs"]["audio"] = audio_name

    graph[DRAFT_START_FRAME_NODE]["inputs"]["Number"] = str(start_frame)
    graph[DRAFT_DURATION_NODE]["inputs"]["Number"] = str(duration)
    graph[DRAFT_AUDIO_CROP_NODE]["inputs"]["frame_rate"] = frame_rate
    graph[DRAFT_PEAKS_NODE]["inputs"]["min_peaks_distance"] = PEAKS_MIN_DISTANCE

    width, height = DRAFT_DIMENSIONS.get(orientation, DRAFT_DIMENSIONS["portrait"])
    graph[DRAFT_LATENT_NODE]["inputs"]["width"] = width
    graph[DRAFT_LATENT_NODE]["inputs"]["height"] = height

    graph[DRAFT_SAMPLER_NODE]["inputs"]["seed"] = seed if seed is not None else random.randint(0, 2**32 - 1)

    for node_id, phase in ((DRAFT_OUTPUT_NODE, "draft"), (FINAL_OUTPUT_NODE, "final")):
        graph[node_id]["inputs"]["frame_rate"] = frame_rate
        graph[node_id]["inputs"]["filename_prefix"] = _output_prefix(
            output_root, phase, start_frame, duration
        )

    return graph


def build_upscale_graph(
    *,
    draft_name: str,
    start_frame: int,
    duration: int,
    flow_name: str | None = None,
    frame_rate: int = 24,
    output_root: str = "animator",
    seed: int | None = None,
) -> dict[str, Any]:
    """Upscale job chained off a segment's draft video.

    Without a flow reference the control net is fed the draft itself at
    zero strength and the flow loader is removed from the graph.
    """
    graph = load_template("upscale")

    graph[UPSCALE_DRAFT_NODE]["inputs"]["video"] = draft_name
    if flow_name:
        graph[UPSCALE_FLOW_NODE]["inputs"]["video"] = flow_name
    else:
        del graph[UPSCALE_FLOW_NODE]
        graph[UPSCALE_CONTROLNET_NODE]["inputs"]["image"] = [UPSCALE_DRAFT_NODE, 0]
        graph[UPSCALE_CONTROLNET_NODE]["inputs"]["strength"] = 0.0

    graph[UPSCALE_SAMPLER_NODE]["inputs"]["seed"] = seed if seed is not None else random.randint(0, 2**32 - 1)
    graph[UPSCALE_OUTPUT_NODE]["inputs"]["frame_rate"] = frame_rate
    graph[UPSCALE_OUTPUT_NODE]["inputs"]["filename_prefix"] = _output_prefix(
        output_root, "upscale", start_frame, duration
    )
    return graph


def extract_video_output(outputs: dict[str, Any], node_id: str) -> VideoOutput:
    """Find the video a combine node wrote.

    Raises:
        RenderJobError: If the node produced nothing usable
    """
    node_outputs = outputs.get(node_id) or {}
    for key in ("gifs", "videos", "images"):
        files = node_outputs.get(key)
        if files:
            first = files[0]
            return VideoOutput(
                filename=first["filename"],
                subfolder=first.get("subfolder", ""),
                folder_type=first.get("type", "output"),
            )
    raise RenderJobError(f"Render result has no video output for node {node_id}")
