# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets; keep them in .env (local, gitignored).

This file exists to make the repo self-documenting without opening the settings module.
"""

ENV_VARS = {
    # App / logging
    "TRACKER_APP_NAME": "App display name (default: collab-tracker).",
    "TRACKER_LOG_LEVEL": "Console logging level (default: INFO).",
    # Local data
    "TRACKER_DATA_DIR": "Directory for SQLite files and tracker.log (default: .local/tracker).",
    "TRACKER_PROJECTS_DB_PATH": "Projects/collaborators/invitations database (default: <data_dir>/projects.sqlite3).",
    "TRACKER_TASKS_DB_PATH": "Tasks/shares/selections/refinements database (default: <data_dir>/tasks.sqlite3).",
    # Invitations / email
    "TRACKER_APP_BASE_URL": "Base URL for accept/decline links (fallbacks: SITE_URL, VERCEL_URL, http://localhost:3000).",
    "TRACKER_PLUNK_API_KEY": "Plunk API key; without it invitation emails are skipped with a warning.",
    "TRACKER_INVITATION_TTL_DAYS": "Days an invitation stays valid (default: 7).",
    # Metrics
    "TRACKER_GITHUB_TOKEN": "Optional GitHub token for higher API rate limits.",
    # Image analysis
    "TRACKER_OPENROUTER_API_KEY": "OpenAI-compatible API key; without it image analysis runs offline.",
    "TRACKER_OPENROUTER_BASE_URL": "OpenAI-compatible base URL (default: https://openrouter.ai/api/v1).",
    "TRACKER_VISION_MODEL": "Vision model id (default: anthropic/claude-3.7-sonnet).",
    # HTTP
    "TRACKER_HTTP_TIMEOUT_SECONDS": "Timeout for email/metrics HTTP calls (default: 10).",
}
