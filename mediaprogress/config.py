"""Orchestrator configuration defaults and paths.

Values here are the built-in defaults; a YAML file (see
``mediaprogress.core.progress.settings``) may override any of them.
"""

from pathlib import Path

# Base paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
PROGRESS_CONFIG_PATH = PROJECT_ROOT / "progress_config.yaml"

# Slots: fixed named buckets, each holding at most one running job
DEFAULT_SLOTS = ("anime", "manga", "adulte-game", "cloud", "translation")

# Standalone running flags (may be raised before the first progress event)
DEFAULT_FLAGS = ("mal-sync", "anilist-sync", "translation", "adulte-game", "cloud")

# Auto-dismiss delays per job kind, milliseconds
DEFAULT_DISMISS_DELAY_MS = 3000
DEFAULT_DISMISS_DELAYS_MS = {
    "default": DEFAULT_DISMISS_DELAY_MS,
    "anime-enrichment": 2000,
    "manga-enrichment": 2000,
    "anilist-sync": 5000,
    "mihon-import": 3000,
}

# Elapsed values above this are displayed as exactly this (clock skew, stuck timers)
ELAPSED_CEILING_MS = 24 * 60 * 60 * 1000

# Close every banner once all jobs are done; None disables it
CLOSE_ALL_WHEN_COMPLETED_MS: int | None = None
