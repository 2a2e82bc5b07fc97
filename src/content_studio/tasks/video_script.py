from __future__ import annotations

import asyncio
from typing import Any, Iterable, List, Optional

from pydantic import Field, ValidationError as PydanticValidationError
from rich.console import Console

from ..errors import SchemaParseError, ValidationError
from ..schema import array_schema, integer_schema, object_schema, string_schema
from ..tracker import SleepFunc, track_video
from ..types import VideoResult
from .base import StoreKey, Task, TaskModel, require
from .batch_runner import SceneBatchRunner, SceneJob, SceneOutcome

SCENE_SCHEMA = object_schema(
    {
        "id": integer_schema(),
        "visualDescription": string_schema(),
        "audioBgm": string_schema(),
        "duration": string_schema(),
        "voiceover": string_schema(),
        "subtitles": string_schema(),
        "notes": string_schema(),
        "veoPrompt": string_schema("Detailed English prompt for the video model: lighting, materials, motion, camera"),
    },
    required=["id", "visualDescription", "audioBgm", "duration", "voiceover", "subtitles", "veoPrompt"],
)

VIDEO_SCRIPT_SCHEMA = object_schema(
    {
        "title": string_schema(),
        "duration": string_schema(),
        "aspectRatio": string_schema(),
        "concept": string_schema(),
        "scenes": array_schema(SCENE_SCHEMA),
        "platformPosts": array_schema(
            object_schema({"platform": string_schema(), "content": string_schema()})
        ),
    }
)


class VideoScriptInputs(TaskModel):
    product_desc: str = ""
    platforms: List[str] = Field(default_factory=lambda: ["TikTok", "YouTube"])
    target_market: str = "USA"
    video_style: str = "Cinematic Product Showcase"


class Scene(TaskModel):
    id: int
    visual_description: str = Field(alias="visualDescription")
    audio_bgm: str = Field(alias="audioBgm")
    duration: str
    voiceover: str
    subtitles: str
    notes: str = ""
    veo_prompt: str = Field(alias="veoPrompt")


class PlatformPost(TaskModel):
    platform: str
    content: str


class ScriptData(TaskModel):
    title: str
    duration: str
    aspect_ratio: str = Field(alias="aspectRatio")
    concept: str
    scenes: List[Scene] = Field(default_factory=list)
    platform_posts: List[PlatformPost] = Field(default_factory=list, alias="platformPosts")


class VideoScriptState(TaskModel):
    script: Optional[ScriptData] = None


def video_orientation(aspect_ratio: str) -> str:
    """Map a free-form script aspect ratio onto the two ratios the video model accepts."""
    text = (aspect_ratio or "").lower()
    return "9:16" if "9:16" in text or "portrait" in text else "16:9"


class VideoScriptTask(Task[VideoScriptInputs, VideoScriptState]):
    """
    Short-video scripts as structured data, plus per-scene video rendering.

    Rendered videos are not persisted: their download URLs embed the access key.
    """

    input_key = StoreKey.VIDEO_SCRIPT_INPUTS
    result_key = StoreKey.VIDEO_SCRIPT_DATA
    input_model = VideoScriptInputs
    result_model = VideoScriptState

    def build_prompt(self, inputs: VideoScriptInputs) -> str:
        description = require(inputs.product_desc, "product_desc")
        if not inputs.platforms:
            raise ValidationError("Select at least one platform")
        return self.with_company_context(
            "\n".join(
                [
                    "Role: veteran video director and global social media strategist.",
                    f"Product description: {description}",
                    f"Platforms: {', '.join(inputs.platforms)}",
                    f"Target market: {inputs.target_market}",
                    f"Style: {inputs.video_style}",
                    "Create a detailed, high-conversion video script. For each scene write a veoPrompt: "
                    "a descriptive English paragraph covering lighting, materials, motion and camera angles.",
                ]
            ),
            label="Company Background",
        )

    async def generate_script(self) -> ScriptData:
        prompt = self.build_prompt(self.inputs.value)
        result = await self.client.generate_structured(
            prompt,
            VIDEO_SCRIPT_SCHEMA,
            "You are an expert video producer. Output strictly valid JSON.",
        )
        script = _validate_script(result.value, result.raw_text)
        self.results.set(VideoScriptState(script=script))
        return script

    @property
    def script(self) -> ScriptData:
        script = self.results.value.script
        if script is None:
            raise ValidationError("Generate a script before rendering scenes")
        return script

    def scene(self, scene_id: int) -> Scene:
        for scene in self.script.scenes:
            if scene.id == scene_id:
                return scene
        raise ValidationError(f"Script has no scene {scene_id}")

    async def render_scene(
        self,
        scene_id: int,
        cancel_event: asyncio.Event | None = None,
        sleep: SleepFunc | None = None,
    ) -> VideoResult:
        scene = self.scene(scene_id)
        return await track_video(
            self.client,
            scene.veo_prompt,
            video_orientation(self.script.aspect_ratio),
            cancel_event=cancel_event,
            sleep=sleep,
        )

    async def render_scenes(
        self,
        scene_ids: Iterable[int] | None = None,
        console: Console | None = None,
        show_progress: bool = True,
        cancel_event: asyncio.Event | None = None,
        sleep: SleepFunc | None = None,
    ) -> List[SceneOutcome]:
        script = self.script
        scenes = script.scenes if scene_ids is None else [self.scene(scene_id) for scene_id in scene_ids]
        orientation = video_orientation(script.aspect_ratio)
        runner = SceneBatchRunner(
            self.client,
            console=console,
            show_progress=show_progress,
            cancel_event=cancel_event,
            sleep=sleep,
        )
        jobs = [SceneJob(name=f"scene-{scene.id}", prompt=scene.veo_prompt, aspect_ratio=orientation) for scene in scenes]
        return await runner.run(jobs)


def _validate_script(value: Any, raw_text: str) -> ScriptData:
    try:
        return ScriptData.model_validate(value)
    except PydanticValidationError as exc:
        raise SchemaParseError(f"Video script does not match the declared schema: {exc}", raw_text) from exc
