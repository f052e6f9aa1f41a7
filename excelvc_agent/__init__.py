"""
ExcelVC Agent
Version: 1.0

A background agent that keeps encrypted version history of spreadsheets
in watched folders, with point-in-time restore and time-based retention.
"""

__version__ = "1.0.0"

from .config import Config, ConfigManager
from .database import Database
from .logger import get_logger
from .codec import ContentCodec, CorruptPayloadError, PayloadIntegrityError
from .crypto import CryptoEnvelope, DecryptionError, KeyConfigurationError
from .debounce import DebounceEngine
from .stability import wait_until_stable
from .watcher import WatchManager, WatchRegistry, WatchResult
from .capture import VersionCapturePipeline, CaptureOutcome, CaptureStatus
from .restore import RestoreWorkflow, RestoreResult
from .retention import RetentionSweeper

__all__ = [
    "Config",
    "ConfigManager",
    "Database",
    "get_logger",
    "ContentCodec",
    "CorruptPayloadError",
    "PayloadIntegrityError",
    "CryptoEnvelope",
    "DecryptionError",
    "KeyConfigurationError",
    "DebounceEngine",
    "wait_until_stable",
    "WatchManager",
    "WatchRegistry",
    "WatchResult",
    "VersionCapturePipeline",
    "CaptureOutcome",
    "CaptureStatus",
    "RestoreWorkflow",
    "RestoreResult",
    "RetentionSweeper",
    "__version__"
]
