# src/collab_tracker/tasks/image_analysis.py

from __future__ import annotations

"""
Image-to-tasks ingestion.

An ImageTaskExtractor turns a screenshot or whiteboard photo into an
ImageAnalysis; the caller picks which extracted tasks to keep and
create_tasks_from_image() turns them into regular tasks owned by the caller.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any

from ..core.access import require_identity
from ..core.clock import Clock, SystemClock
from ..core.errors import ValidationError
from ..core.identity import Identity
from ..core.ports import ImageTaskExtractor
from .lifecycle import TaskLifecycle
from .task_models import DEFAULT_TASK_HOURS, TaskFields, TaskPriority

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_MEDIA_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
GENERATED_MARKER = "Generated via image analysis"

_DATA_URL = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)
_JSON_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass(slots=True)
class ExtractedTask:
    id: str
    title: str
    description: str | None = None
    notes: str | None = None
    priority: str = TaskPriority.MEDIUM.value
    estimated_hours: float | None = None


@dataclass(slots=True)
class ImageAnalysis:
    summary: str = ""
    total_estimated_hours: float | None = None
    confidence: float | None = None
    tasks: list[ExtractedTask] = field(default_factory=list)


def _new_task_id(index: int) -> str:
    return f"task-{index + 1}-{uuid.uuid4().hex}"


def ensure_priority(raw: Any, fallback: str = TaskPriority.MEDIUM.value) -> str:
    if not isinstance(raw, str) or not raw.strip():
        return fallback
    value = raw.strip().lower()
    return value if value in {p.value for p in TaskPriority} else fallback


def _opt_str(obj: dict[str, Any], key: str) -> str | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Field '{key}' must be a string")
    return value


def _opt_number(obj: dict[str, Any], key: str, *, upper: float | None = None) -> float | None:
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Field '{key}' must be a number")
    if value < 0 or (upper is not None and value > upper):
        raise ValidationError(f"Field '{key}' is out of range")
    return float(value)


def analysis_from_dict(data: Any) -> ImageAnalysis:
    """Validate a decoded analysis payload; missing task ids are generated."""
    if not isinstance(data, dict):
        raise ValidationError("Image analysis must be a JSON object")

    raw_tasks = data.get("tasks") or []
    if not isinstance(raw_tasks, list):
        raise ValidationError("Field 'tasks' must be a list")

    tasks: list[ExtractedTask] = []
    for index, item in enumerate(raw_tasks):
        if not isinstance(item, dict):
            raise ValidationError("Each extracted task must be an object")
        title = _opt_str(item, "title")
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        task_id = _opt_str(item, "id") or _new_task_id(index)
        tasks.append(
            ExtractedTask(
                id=task_id,
                title=title.strip(),
                description=_opt_str(item, "description"),
                notes=_opt_str(item, "notes"),
                priority=ensure_priority(item.get("priority")),
                estimated_hours=_opt_number(item, "estimatedHours"),
            )
        )

    return ImageAnalysis(
        summary=_opt_str(data, "summary") or "",
        total_estimated_hours=_opt_number(data, "totalEstimatedHours"),
        confidence=_opt_number(data, "confidence", upper=1.0),
        tasks=tasks,
    )


def parse_image_analysis(raw_text: str) -> ImageAnalysis:
    """Parse a model's JSON reply (a ```json fence around it is tolerated)."""
    text = (raw_text or "").strip()
    if not text:
        raise ValidationError("Image analysis response was empty")
    fenced = _JSON_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        raise ValidationError("Failed to parse AI response") from None
    return analysis_from_dict(data)


def analysis_to_dict(analysis: ImageAnalysis) -> dict[str, Any]:
    return {
        "summary": analysis.summary,
        "totalEstimatedHours": analysis.total_estimated_hours,
        "confidence": analysis.confidence,
        "tasks": [
            {
                "id": t.id,
                "title": t.title,
                "description": t.description,
                "notes": t.notes,
                "priority": t.priority,
                "estimatedHours": t.estimated_hours,
            }
            for t in analysis.tasks
        ],
    }


def parse_data_url(image_data_url: str) -> tuple[str, str]:
    """Return (media_type, base64_payload) of an image data URL."""
    if not (image_data_url or "").startswith("data:"):
        raise ValidationError("Image must be provided as a base64 data URL")
    match = _DATA_URL.match(image_data_url)
    if not match:
        raise ValidationError("Invalid data URL format for image")
    media_type, payload = match.group(1), match.group(2)
    if media_type not in SUPPORTED_IMAGE_MEDIA_TYPES:
        raise ValidationError("Provided file is not an image")
    return media_type, payload


def build_task_details(task: ExtractedTask) -> str:
    sections: list[str] = []
    if task.description and task.description.strip():
        sections.append(task.description.strip())
    if task.notes and task.notes.strip():
        sections.append(f"Notes: {task.notes.strip()}")
    sections.append(GENERATED_MARKER)
    return "\n\n".join(sections)


def build_analysis_metadata(
    analysis: ImageAnalysis,
    source_task_id: str,
    *,
    generated_at: int,
    project_id: int | None = None,
) -> str:
    payload: dict[str, Any] = {
        "source": "image-analysis",
        "generatedAt": int(generated_at),
        "sourceTaskId": source_task_id,
        "summary": analysis.summary or "",
        "confidence": analysis.confidence,
        "totalEstimatedHours": analysis.total_estimated_hours,
        "tasks": analysis_to_dict(analysis)["tasks"],
    }
    if project_id is not None:
        payload["projectId"] = str(project_id)
    return json.dumps(payload, ensure_ascii=False)


class ImageTaskIngestion:
    def __init__(
        self,
        lifecycle: TaskLifecycle,
        extractor: ImageTaskExtractor,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.extractor = extractor
        self.clock = clock or lifecycle.clock or SystemClock()

    def analyze_task_image(
        self,
        identity: Identity | None,
        image_data_url: str,
        context: str | None = None,
    ) -> ImageAnalysis:
        require_identity(identity)
        parse_data_url(image_data_url)
        analysis = self.extractor.extract(image_data_url, context)
        logger.info("Image analysed: %s candidate task(s)", len(analysis.tasks))
        return analysis

    def create_tasks_from_image(
        self,
        identity: Identity | None,
        analysis: ImageAnalysis,
        selected_ids: list[str],
        *,
        project_id: int | None = None,
        default_priority: str | None = None,
        default_hrs: float | None = None,
    ) -> list[int]:
        identity = require_identity(identity)
        wanted = set(selected_ids or [])
        selected = [t for t in analysis.tasks if t.id in wanted]
        if not selected:
            raise ValidationError("No tasks selected")

        fallback_priority = ensure_priority(default_priority)
        fallback_hours = DEFAULT_TASK_HOURS if default_hrs is None else float(default_hrs)

        created: list[int] = []
        for extracted in selected:
            fields = TaskFields(
                text=extracted.title,
                details=build_task_details(extracted),
                priority=ensure_priority(extracted.priority, fallback_priority),
                hrs=extracted.estimated_hours if extracted.estimated_hours is not None else fallback_hours,
                project_id=project_id,
                analysis_data=build_analysis_metadata(
                    analysis,
                    extracted.id,
                    generated_at=self.clock.now_ms(),
                    project_id=project_id,
                ),
            )
            created.append(self.lifecycle.create_task(identity, fields))

        logger.info("Created %s task(s) from image analysis", len(created))
        return created


__all__ = [
    "ExtractedTask",
    "ImageAnalysis",
    "ImageTaskIngestion",
    "analysis_from_dict",
    "analysis_to_dict",
    "build_analysis_metadata",
    "build_task_details",
    "parse_data_url",
    "parse_image_analysis",
]
