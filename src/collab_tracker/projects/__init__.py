"""
Project subsystem.

Components:
- project_models.py: Project, ProjectCollaborator, ProjectInvitation
- project_store.py: SQLite-backed storage for the three tables
- registry.py: project CRUD, collaborator membership and invitations
- github.py / metrics.py: repository slug parsing and GitHub/npm metrics
"""
