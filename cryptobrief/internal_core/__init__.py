from .config import AppConfig, load_config
from .storage import JsonFileKeyValueStore, SavedAnalysisRepository
from .workspace_store import InMemoryWorkspaceStore

__all__ = [
    "AppConfig",
    "load_config",
    "InMemoryWorkspaceStore",
    "JsonFileKeyValueStore",
    "SavedAnalysisRepository",
]
