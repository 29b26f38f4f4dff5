# tests/test_commands.py

from __future__ import annotations

from collab_tracker.cli.commands import CommandRegistry, registry


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b")

    assert reg.handle(state, "/a x") == "h2"
    assert reg.handle(state, "/b y", emit=lambda _: None) == "h3"
    assert called["h2"] == 1
    assert called["h3"] == 1


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")


def test_tracker_errors_are_shown_verbatim(state) -> None:
    assert registry.handle(state, "/project-new Widget") == "Not authenticated"
    assert registry.handle(state, "/start abc") == "Usage: /start <task_id>"


def test_console_session_flow(state) -> None:
    out = []
    registry.handle(state, "/login u1 owner@example.com Olivia")
    assert registry.handle(state, "/project-new Widget") == "Project created: #1"
    assert registry.handle(state, "/task-new @1 Write docs") == "Task created: #1"
    assert registry.handle(state, "/start 1") == "Task #1 started."
    assert registry.handle(state, "/start 1") == "Task is already running"
    assert registry.handle(state, "/done 1") == "Task #1 completed."
    assert registry.handle(state, "/share 1") == "No collaborators on this project yet"

    reply = registry.handle(state, "/invite 1 bob@example.com", emit=out.append)
    assert reply == "Invitation sent to bob@example.com"
    assert out == ["Inviting bob@example.com..."]

    registry.handle(state, "/login u2 bob@example.com Bob")
    listing = registry.handle(state, "/invitations") or ""
    token = listing.rsplit("token=", 1)[1].strip()
    assert registry.handle(state, f"/accept {token}") == "Joined project #1."
    assert "role=collaborator" in (registry.handle(state, "/projects") or "")
