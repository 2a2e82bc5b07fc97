from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Generic, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ..clients.gemini import GeminiClient
from ..errors import ValidationError
from ..store import PersistedStore, Slot


class StoreKey(str, Enum):
    """Every durable slot the application owns. One owner per key."""

    GLOBAL_SETTINGS = "global_settings"
    MARKETING_INPUTS = "marketing_v2_inputs"
    MARKETING_RESULT = "marketing_v2_result"
    OUTREACH_INPUTS = "outreach_inputs_v2"
    OUTREACH_RESULT = "outreach_result_v2"
    LEADGEN_INPUTS = "leadgen_inputs"
    LEADGEN_RESULTS = "leadgen_results"
    PRODUCT_INPUTS = "prod_gen_inputs"
    PRODUCT_RESULTS = "prod_gen_results"
    FISSION_INPUTS = "fission_inputs"
    FISSION_RESULTS = "fission_results"
    IMAGE_INPUTS = "img_asst_inputs"
    IMAGE_RESULTS = "img_asst_results"
    VIDEO_SCRIPT_INPUTS = "video_script_v3_inputs"
    VIDEO_SCRIPT_DATA = "video_script_v3_data"


class TaskModel(BaseModel):
    """Base for persisted task payloads; accepts both field names and camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


class GlobalSettings(TaskModel):
    enable_global_info: bool = Field(default=False, description="Append company context to every prompt")
    company_info: str = Field(default="", description="Company / brand background")


@dataclass
class TaskContext:
    """Collaborators shared by every task: the generation client, the store and global settings."""

    client: GeminiClient
    store: PersistedStore
    settings: Slot[GlobalSettings]

    @classmethod
    def create(cls, client: GeminiClient, store: PersistedStore) -> "TaskContext":
        settings = store.slot(StoreKey.GLOBAL_SETTINGS, GlobalSettings(), GlobalSettings)
        return cls(client=client, store=store, settings=settings)

    def company_context(self) -> str:
        settings = self.settings.value
        if settings.enable_global_info and settings.company_info.strip():
            return settings.company_info.strip()
        return ""


InputT = TypeVar("InputT", bound=TaskModel)
ResultT = TypeVar("ResultT", bound=TaskModel)


class Task(Generic[InputT, ResultT]):
    """
    A task owns an inputs slot and a results slot.

    Results are only written after a generation succeeds, so a failed call leaves the
    previously stored results untouched.
    """

    input_key: ClassVar[StoreKey]
    result_key: ClassVar[StoreKey]
    input_model: ClassVar[Type[TaskModel]]
    result_model: ClassVar[Type[TaskModel]]

    def __init__(self, context: TaskContext) -> None:
        self._context = context
        input_key, result_key = self.storage_keys()
        self.inputs: Slot[InputT] = context.store.slot(input_key, self.input_model(), self.input_model)
        self.results: Slot[ResultT] = context.store.slot(result_key, self.result_model(), self.result_model)

    def storage_keys(self) -> tuple[str | StoreKey, str | StoreKey]:
        return self.input_key, self.result_key

    @property
    def client(self) -> GeminiClient:
        return self._context.client

    def with_company_context(self, text: str, label: str = "Company Context") -> str:
        context = self._context.company_context()
        return f"{text}\n\n{label}: {context}" if context else text

    def reset(self) -> None:
        # two independent writes; there is no cross-key transaction
        self.inputs.reset()
        self.results.reset()


def require(value: str, field_name: str) -> str:
    """Return ``value`` stripped, raising ``ValidationError`` when it is blank."""
    stripped = (value or "").strip()
    if not stripped:
        raise ValidationError(f"'{field_name}' is required")
    return stripped
