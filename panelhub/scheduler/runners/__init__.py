from .base import BatchRunner
from .checkin import CheckinRunner
from .model_sync import ModelSyncRunner
from .refresh import RefreshRunner

__all__ = ["BatchRunner", "CheckinRunner", "ModelSyncRunner", "RefreshRunner"]
