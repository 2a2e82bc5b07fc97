from __future__ import annotations

from .base import Task, TaskContext, TaskModel, require


class AssistantInputs(TaskModel):
    text: str = ""


class AssistantResult(TaskModel):
    text: str = ""


class GenericAssistantTask(Task[AssistantInputs, AssistantResult]):
    """
    Free-form text assistant configured per module.

    Each module persists under ``<module_key>_input`` and ``<module_key>_result``, and
    sends its own system prompt with the company context appended when enabled.
    """

    input_model = AssistantInputs
    result_model = AssistantResult

    def __init__(self, context: TaskContext, module_key: str, system_prompt: str) -> None:
        self.module_key = require(module_key, "module_key")
        self.system_prompt = system_prompt
        super().__init__(context)

    def storage_keys(self) -> tuple[str, str]:
        return f"{self.module_key}_input", f"{self.module_key}_result"

    async def generate(self) -> AssistantResult:
        prompt = require(self.inputs.value.text, "text")
        response = await self.client.generate_text(prompt, self.with_company_context(self.system_prompt))
        return self.results.set(AssistantResult(text=response.text))
