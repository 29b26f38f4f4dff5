"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, TaskRefinement)
- task_store.py: SQLite-backed storage for tasks, shares, selections and refinements
- lifecycle.py: task CRUD, sharing, daily selection and time tracking
- refinements.py: note/question/answer threads attached to a task
- image_analysis.py: turning extracted image tasks into real tasks
"""
