# tests/test_image_analysis.py

from __future__ import annotations

import json

import pytest

from collab_tracker.core.errors import NotAuthenticated, ValidationError
from collab_tracker.tasks.image_analysis import (
    GENERATED_MARKER,
    ExtractedTask,
    ImageAnalysis,
    build_task_details,
    parse_data_url,
    parse_image_analysis,
)
from collab_tracker.tasks.task_models import TaskPriority

PNG_URL = "data:image/png;base64,iVBORw0KGgo="


def test_parse_image_analysis_normalises_tasks() -> None:
    raw = """```json
    {"summary": "Sprint board",
     "confidence": 0.8,
     "tasks": [
        {"id": "t1", "title": " Fix login ", "priority": "HIGH", "estimatedHours": 2},
        {"title": "Write tests", "priority": "urgent"}
     ]}
    ```"""
    analysis = parse_image_analysis(raw)

    assert analysis.summary == "Sprint board"
    assert analysis.confidence == 0.8
    first, second = analysis.tasks
    assert (first.id, first.title, first.priority, first.estimated_hours) == ("t1", "Fix login", "high", 2.0)
    assert second.priority == "medium"
    assert second.id.startswith("task-2-")


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "I think the image shows a board",
        '{"tasks": [{"description": "no title"}]}',
        '{"tasks": [{"title": "x", "estimatedHours": -1}]}',
        '{"confidence": 1.5}',
        '{"tasks": "nope"}',
    ],
)
def test_parse_image_analysis_rejects_bad_payloads(raw: str) -> None:
    with pytest.raises(ValidationError):
        parse_image_analysis(raw)


def test_parse_data_url() -> None:
    assert parse_data_url(PNG_URL) == ("image/png", "iVBORw0KGgo=")
    with pytest.raises(ValidationError):
        parse_data_url("https://example.com/a.png")
    with pytest.raises(ValidationError):
        parse_data_url("data:image/png,rawbytes")
    with pytest.raises(ValidationError):
        parse_data_url("data:application/pdf;base64,AAAA")


def test_build_task_details() -> None:
    details = build_task_details(ExtractedTask(id="x", title="t", description=" Desc ", notes="check API"))
    assert details == f"Desc\n\nNotes: check API\n\n{GENERATED_MARKER}"
    assert build_task_details(ExtractedTask(id="y", title="t")) == GENERATED_MARKER


def test_analyze_task_image_uses_extractor(state, owner, extractor) -> None:
    extractor.analysis = ImageAnalysis(summary="board", tasks=[ExtractedTask(id="a", title="A")])

    analysis = state.images.analyze_task_image(owner, PNG_URL, "mobile app")

    assert analysis.summary == "board"
    assert extractor.calls == [(PNG_URL, "mobile app")]
    with pytest.raises(NotAuthenticated):
        state.images.analyze_task_image(None, PNG_URL)
    with pytest.raises(ValidationError):
        state.images.analyze_task_image(owner, "not-a-data-url")


def test_create_tasks_from_image(state, owner, clock) -> None:
    analysis = ImageAnalysis(
        summary="board",
        tasks=[
            ExtractedTask(id="a", title="Alpha", description="first", estimated_hours=3),
            ExtractedTask(id="b", title="Beta", priority="low"),
            ExtractedTask(id="c", title="Gamma"),
        ],
    )

    created = state.images.create_tasks_from_image(owner, analysis, ["a", "b"], default_hrs=0.5)

    assert len(created) == 2
    alpha, beta = (state.tasks.load_task(tid) for tid in created)
    assert alpha.text == "Alpha"
    assert alpha.hrs == 3
    assert alpha.details.endswith(GENERATED_MARKER)
    assert beta.priority == TaskPriority.LOW
    assert beta.hrs == 0.5

    meta = json.loads(alpha.analysis_data)
    assert meta["source"] == "image-analysis"
    assert meta["sourceTaskId"] == "a"
    assert meta["generatedAt"] == clock.now_ms()
    assert [t["id"] for t in meta["tasks"]] == ["a", "b", "c"]


def test_create_tasks_from_image_needs_selection(state, owner) -> None:
    analysis = ImageAnalysis(tasks=[ExtractedTask(id="a", title="Alpha")])
    with pytest.raises(ValidationError):
        state.images.create_tasks_from_image(owner, analysis, [])
    with pytest.raises(ValidationError):
        state.images.create_tasks_from_image(owner, analysis, ["zzz"])
