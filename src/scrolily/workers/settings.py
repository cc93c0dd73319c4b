"""arq worker settings module.

Import path for arq CLI: arq scrolily.workers.settings.WorkerSettings
"""

from __future__ import annotations

from scrolily.workers.progression_worker import ProgressionWorkerSettings as WorkerSettings

__all__ = ["WorkerSettings"]
