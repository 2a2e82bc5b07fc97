"""
Generation orchestration core for Gemini-backed content tasks.
"""
from .clients.gemini import GeminiClient
from .config import load_config
from .store import FileBackend, MemoryBackend, PersistedStore
from .tracker import OperationTracker, track_video

__all__ = [
    "FileBackend",
    "GeminiClient",
    "MemoryBackend",
    "OperationTracker",
    "PersistedStore",
    "load_config",
    "track_video",
]
