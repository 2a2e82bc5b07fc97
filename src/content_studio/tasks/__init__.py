"""
Task orchestrators: prompt/schema construction, generation, and persisted inputs/results.
"""
from .assistant import GenericAssistantTask
from .base import GlobalSettings, StoreKey, Task, TaskContext
from .batch_runner import SceneBatchRunner, SceneJob, SceneOutcome
from .copywriting import ColdOutreachTask, LeadGenTask, MarketingCopyTask
from .image import ImageAssistantTask
from .product import ProductFissionTask, ProductListingTask
from .video_script import VideoScriptTask

__all__ = [
    "ColdOutreachTask",
    "GenericAssistantTask",
    "GlobalSettings",
    "ImageAssistantTask",
    "LeadGenTask",
    "MarketingCopyTask",
    "ProductFissionTask",
    "ProductListingTask",
    "SceneBatchRunner",
    "SceneJob",
    "SceneOutcome",
    "StoreKey",
    "Task",
    "TaskContext",
    "VideoScriptTask",
]
