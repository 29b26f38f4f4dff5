# tests/test_task_lifecycle.py

from __future__ import annotations

import pytest

from collab_tracker.core.errors import (
    AlreadyRunning,
    NoProject,
    NotAuthenticated,
    NotAuthorized,
    NotFound,
    NotSelectedToday,
    ValidationError,
)
from collab_tracker.core.identity import Identity
from collab_tracker.projects.project_models import ProjectFields
from collab_tracker.tasks.task_models import TaskFields, TaskPriority, TaskStatus, TaskUpdate


def _task(state, who, text="Write docs", **kw) -> int:
    return state.tasks.create_task(who, TaskFields(text=text, **kw))


def _project_with(state, owner, *members: Identity) -> int:
    pid = state.projects.create_project(owner, ProjectFields(name="Widget"))
    for member in members:
        res = state.projects.invite_project_collaborator_mutation(owner, pid, member.email)
        state.projects.accept_project_invitation(member, res.invitation.token)
    return pid


def _shared_task(state, owner, *members: Identity) -> int:
    pid = _project_with(state, owner, *members)
    tid = _task(state, owner, project_id=pid)
    state.tasks.share_task_with_collaborators(owner, tid)
    return tid


def _assert_running_invariant(task) -> None:
    assert (task.status == TaskStatus.IN_PROGRESS) == (task.started_at is not None)


def test_create_task_defaults(state, owner, clock) -> None:
    tid = _task(state, owner)
    task = state.tasks.get_task(owner, tid)

    assert task.user_id == owner.subject
    assert task.status == TaskStatus.TODO
    assert task.priority == TaskPriority.MEDIUM
    assert task.hrs == 1.0
    assert task.tracked_time_ms == 0
    assert task.created_at == clock.now_ms()
    _assert_running_invariant(task)


def test_create_task_validation(state, owner) -> None:
    with pytest.raises(NotAuthenticated):
        _task(state, None)
    with pytest.raises(ValidationError):
        _task(state, owner, text="  ")
    with pytest.raises(ValidationError):
        _task(state, owner, priority="urgent")
    with pytest.raises(ValidationError):
        _task(state, owner, status="paused")


def test_create_in_progress_stamps_started_at(state, owner, clock) -> None:
    tid = _task(state, owner, status="in-progress")
    task = state.tasks.load_task(tid)
    assert task.started_at == clock.now_ms()
    _assert_running_invariant(task)


def test_start_then_stop_accumulates(state, owner, clock) -> None:
    tid = _task(state, owner)
    t0 = clock.now_ms()

    state.tasks.start_task(owner, tid)
    task = state.tasks.load_task(tid)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.started_at == t0

    clock.advance(5000)
    state.tasks.stop_task(owner, tid)
    task = state.tasks.load_task(tid)
    assert task.status == TaskStatus.TODO
    assert task.started_at is None
    assert task.tracked_time_ms >= 5000
    _assert_running_invariant(task)


def test_tracked_time_sums_runs(state, owner, clock) -> None:
    tid = _task(state, owner)
    for run in (1000, 2500, 400):
        state.tasks.start_task(owner, tid)
        clock.advance(run)
        state.tasks.stop_task(owner, tid)

    state.tasks.start_task(owner, tid)
    clock.advance(100)
    state.tasks.complete_task(owner, tid)

    task = state.tasks.load_task(tid)
    assert task.tracked_time_ms == 4000
    assert task.status == TaskStatus.DONE
    assert task.completed_at == clock.now_ms()
    _assert_running_invariant(task)


def test_clock_skew_never_subtracts_time(state, owner, clock) -> None:
    tid = _task(state, owner)
    state.tasks.start_task(owner, tid)
    clock.advance(3000)
    state.tasks.stop_task(owner, tid)

    state.tasks.start_task(owner, tid)
    clock.advance(-10_000)
    state.tasks.stop_task(owner, tid)

    assert state.tasks.load_task(tid).tracked_time_ms == 3000


def test_start_running_task_fails(state, owner) -> None:
    tid = _task(state, owner)
    state.tasks.start_task(owner, tid)
    with pytest.raises(AlreadyRunning):
        state.tasks.start_task(owner, tid)


def test_complete_from_todo(state, owner, clock) -> None:
    tid = _task(state, owner)
    state.tasks.complete_task(owner, tid)
    task = state.tasks.load_task(tid)
    assert task.status == TaskStatus.DONE
    assert task.tracked_time_ms == 0
    assert task.completed_at == clock.now_ms()


def test_toggle_status_reopens_and_completes(state, owner, clock) -> None:
    tid = _task(state, owner)
    state.tasks.start_task(owner, tid)
    clock.advance(2000)

    assert state.tasks.toggle_task_status(owner, tid) == TaskStatus.DONE
    task = state.tasks.load_task(tid)
    assert task.tracked_time_ms == 2000
    _assert_running_invariant(task)

    assert state.tasks.toggle_task_status(owner, tid) == TaskStatus.TODO
    task = state.tasks.load_task(tid)
    assert task.completed_at is None
    assert task.tracked_time_ms == 2000


def test_selected_collaborator_can_start(state, owner, bob, carol) -> None:
    """Shared-with bob selects the task for today and runs it; carol cannot."""
    tid = _shared_task(state, owner, bob)

    state.tasks.toggle_task_selection(bob, tid, True)
    state.tasks.start_task(bob, tid)
    assert state.tasks.load_task(tid).status == TaskStatus.IN_PROGRESS

    with pytest.raises(NotAuthorized):
        state.tasks.start_task(carol, tid)
    with pytest.raises(NotAuthorized):
        state.tasks.stop_task(carol, tid)


def test_shared_but_unselected_cannot_start(state, owner, bob) -> None:
    tid = _shared_task(state, owner, bob)
    with pytest.raises(NotAuthorized) as exc:
        state.tasks.start_task(bob, tid)
    assert not isinstance(exc.value, NotSelectedToday)


def test_selection_from_yesterday_is_stale(state, owner, bob, clock) -> None:
    tid = _shared_task(state, owner, bob)
    state.tasks.toggle_task_selection(bob, tid, True)

    clock.next_day()
    with pytest.raises(NotSelectedToday):
        state.tasks.start_task(bob, tid)

    state.tasks.toggle_task_selection(bob, tid, True)
    state.tasks.start_task(bob, tid)


def test_same_day_reselect_keeps_first_timestamp(state, owner, bob, clock) -> None:
    tid = _shared_task(state, owner, bob)
    first = clock.now_ms()
    state.tasks.toggle_task_selection(bob, tid, True)

    clock.advance(60_000)
    state.tasks.toggle_task_selection(bob, tid, True)

    assert state.tasks.load_task(tid).selected_by == {"bob@example.com": first}


def test_deselect_removes_selection(state, owner, bob) -> None:
    tid = _shared_task(state, owner, bob)
    state.tasks.toggle_task_selection(bob, tid, True)
    state.tasks.toggle_task_selection(bob, tid, False)

    assert state.tasks.load_task(tid).selected_by == {}
    with pytest.raises(NotAuthorized):
        state.tasks.start_task(bob, tid)


def test_selection_requires_access_and_email(state, owner, carol) -> None:
    tid = _task(state, owner)
    with pytest.raises(NotAuthorized):
        state.tasks.toggle_task_selection(carol, tid, True)
    with pytest.raises(ValidationError):
        state.tasks.toggle_task_selection(Identity(subject=owner.subject), tid, True)


def test_share_with_collaborators(state, owner, bob, carol) -> None:
    pid = _project_with(state, owner, bob, carol)
    tid = _task(state, owner, project_id=pid)

    result = state.tasks.share_task_with_collaborators(owner, tid)
    assert result.success is True
    assert result.added == 2
    assert result.total == 2
    assert sorted(state.tasks.load_task(tid).shared_with) == ["bob@example.com", "carol@example.com"]

    again = state.tasks.share_task_with_collaborators(owner, tid)
    assert (again.success, again.added, again.total) == (True, 0, 2)


def test_share_excludes_owner_email(state, owner, clock) -> None:
    pid = _project_with(state, owner)
    # a stray owner row written straight to the store must still not be shared with
    res = state.projects.invite_project_collaborator_mutation(owner, pid, "stray@example.com")
    invitation = state.project_store.find_invitation_by_token(res.invitation.token)
    state.project_store.accept_invitation(
        invitation,
        user_id=owner.subject,
        email=owner.normalized_email,
        user_name=None,
        now_ms=clock.now_ms(),
        new_token="closed",
    )
    tid = _task(state, owner, project_id=pid)

    result = state.tasks.share_task_with_collaborators(owner, tid)
    assert (result.success, result.added) == (False, 0)


def test_share_without_project_or_collaborators(state, owner) -> None:
    lonely = _task(state, owner)
    with pytest.raises(NoProject):
        state.tasks.share_task_with_collaborators(owner, lonely)

    pid = _project_with(state, owner)
    tid = _task(state, owner, project_id=pid)
    result = state.tasks.share_task_with_collaborators(owner, tid)
    assert result.success is False
    assert result.added == 0


def test_share_is_owner_only(state, owner, bob) -> None:
    tid = _shared_task(state, owner, bob)
    with pytest.raises(NotAuthorized):
        state.tasks.share_task_with_collaborators(bob, tid)
    with pytest.raises(NotAuthorized):
        state.tasks.unshare_task(bob, tid)


def test_unshare_removes_access(state, owner, bob) -> None:
    tid = _shared_task(state, owner, bob)
    state.tasks.unshare_task(owner, tid)

    assert state.tasks.load_task(tid).shared_with == []
    assert state.tasks.list_tasks(bob) == []
    with pytest.raises(NotAuthorized):
        state.tasks.get_task(bob, tid)


def test_list_tasks_joins_projects(state, owner, bob) -> None:
    tid = _shared_task(state, owner, bob)
    loose = _task(state, owner, text="No project")

    rows = {r.task.id: r for r in state.tasks.list_tasks(owner)}
    assert rows[tid].project is not None
    assert rows[tid].project.name == "Widget"
    assert rows[loose].project is None

    shared = state.tasks.list_tasks(bob)
    assert [r.task.id for r in shared] == [tid]
    assert state.tasks.list_tasks(None) == []


def test_list_tasks_tolerates_deleted_project(state, owner) -> None:
    pid = _project_with(state, owner)
    tid = _task(state, owner, project_id=pid)
    state.projects.delete_project(owner, pid)

    rows = state.tasks.list_tasks(owner)
    assert [(r.task.id, r.project) for r in rows] == [(tid, None)]


def test_update_task_partial(state, owner, bob) -> None:
    tid = _shared_task(state, owner, bob)
    state.tasks.update_task(owner, tid, TaskUpdate(ref_link="https://example.com/brief"))

    state.tasks.update_task(bob, tid, TaskUpdate(details="More context", priority="high"))
    task = state.tasks.load_task(tid)
    assert task.details == "More context"
    assert task.priority == TaskPriority.HIGH
    assert task.text == "Write docs"
    assert task.ref_link == "https://example.com/brief"

    state.tasks.update_task(owner, tid, TaskUpdate(ref_link=None))
    assert state.tasks.load_task(tid).ref_link is None


def test_update_task_status_keeps_invariant(state, owner, clock) -> None:
    tid = _task(state, owner)
    state.tasks.update_task(owner, tid, TaskUpdate(status="in-progress"))
    task = state.tasks.load_task(tid)
    assert task.started_at == clock.now_ms()

    clock.advance(1500)
    state.tasks.update_task(owner, tid, TaskUpdate(status="done"))
    task = state.tasks.load_task(tid)
    assert task.started_at is None
    assert task.tracked_time_ms == 1500
    _assert_running_invariant(task)


def test_update_task_forbidden_for_strangers(state, owner, carol) -> None:
    tid = _task(state, owner)
    with pytest.raises(NotAuthorized):
        state.tasks.update_task(carol, tid, TaskUpdate(text="mine now"))
    with pytest.raises(NotFound):
        state.tasks.update_task(owner, 9999, TaskUpdate(text="x"))


def test_update_task_status_requires_selection_for_collaborators(state, owner, bob, clock) -> None:
    tid = _shared_task(state, owner, bob)

    with pytest.raises(NotAuthorized):
        state.tasks.update_task(bob, tid, TaskUpdate(status="in-progress"))
    task = state.tasks.load_task(tid)
    assert task.status == TaskStatus.TODO
    assert task.started_at is None

    state.tasks.toggle_task_selection(bob, tid, True)
    state.tasks.update_task(bob, tid, TaskUpdate(status="in-progress"))
    assert state.tasks.load_task(tid).started_at == clock.now_ms()

    clock.next_day()
    with pytest.raises(NotSelectedToday):
        state.tasks.update_task(bob, tid, TaskUpdate(status="done"))
    # unchanged status with other fields stays open to shared collaborators
    state.tasks.update_task(bob, tid, TaskUpdate(status="in-progress", details="still going"))
    assert state.tasks.load_task(tid).details == "still going"


def test_toggle_to_done_requires_selection_for_collaborators(state, owner, bob, clock) -> None:
    tid = _shared_task(state, owner, bob)
    state.tasks.start_task(owner, tid)
    clock.advance(5000)

    with pytest.raises(NotAuthorized):
        state.tasks.toggle_task_status(bob, tid)
    task = state.tasks.load_task(tid)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.tracked_time_ms == 0
    assert task.completed_at is None

    state.tasks.complete_task(owner, tid)
    # reopening only needs the share
    assert state.tasks.toggle_task_status(bob, tid) == TaskStatus.TODO

    state.tasks.toggle_task_selection(bob, tid, True)
    assert state.tasks.toggle_task_status(bob, tid) == TaskStatus.DONE


def test_delete_task_cascades(state, owner, bob) -> None:
    tid = _shared_task(state, owner, bob)
    state.tasks.toggle_task_selection(bob, tid, True)
    state.refinements.add_task_refinement(bob, tid, "note", "hello")

    with pytest.raises(NotAuthorized):
        state.tasks.delete_task(bob, tid)
    state.tasks.delete_task(owner, tid)

    assert state.task_store.get_task(tid) is None
    assert state.task_store.list_refinements(tid) == []
    assert state.task_store.list_tasks_shared_with("bob@example.com") == []


def test_reset_tracked_time(state, owner, bob, clock) -> None:
    tid = _shared_task(state, owner, bob)
    state.tasks.start_task(owner, tid)
    clock.advance(4000)

    with pytest.raises(NotAuthorized):
        state.tasks.reset_tracked_time(bob, tid)

    state.tasks.reset_tracked_time(owner, tid)
    task = state.tasks.load_task(tid)
    assert task.tracked_time_ms == 0
    assert task.started_at == clock.now_ms()

    clock.advance(1000)
    state.tasks.stop_task(owner, tid)
    assert state.tasks.load_task(tid).tracked_time_ms == 1000


def test_migrate_remove_selected_at(state, owner) -> None:
    tid = _task(state, owner)
    conn = state.task_store._get_conn()
    try:
        conn.execute("UPDATE tasks SET selected_at = 1 WHERE id = ?", (tid,))
        conn.commit()
    finally:
        conn.close()

    assert state.tasks.migrate_remove_selected_at(owner) == 1
    assert state.tasks.migrate_remove_selected_at(owner) == 0
