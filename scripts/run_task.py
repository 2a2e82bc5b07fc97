from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from rich.console import Console
from rich.table import Table

from content_studio.clients.gemini import GeminiClient
from content_studio.config import load_config
from content_studio.errors import GenerationError
from content_studio.log import configure_logging
from content_studio.store import FileBackend, PersistedStore
from content_studio.tasks import (
    ColdOutreachTask,
    GenericAssistantTask,
    ImageAssistantTask,
    LeadGenTask,
    MarketingCopyTask,
    ProductFissionTask,
    ProductListingTask,
    TaskContext,
    VideoScriptTask,
)

TASKS = ("copy", "outreach", "leads", "product", "fission", "assistant", "image", "script", "render")

DEFAULT_ASSISTANT_PROMPT = "You are a professional cross-border e-commerce and foreign trade assistant."


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one content task against Gemini using the persisted task inputs."
    )
    parser.add_argument("task", choices=TASKS, help="Task to run.")
    parser.add_argument(
        "--dotenv",
        type=Path,
        default=None,
        help="Optional path to a .env file containing the Gemini API key.",
    )
    parser.add_argument(
        "--source-image",
        type=Path,
        default=None,
        help="Reference image for the image task (inverted into a prompt before generation).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory receiving generated images.",
    )
    parser.add_argument(
        "--scene",
        type=int,
        action="append",
        default=None,
        help="Scene id to render (repeatable); defaults to every scene in the stored script.",
    )
    parser.add_argument("--module", default="assistant", help="Module key for the assistant task (storage prefix).")
    parser.add_argument(
        "--system-prompt",
        default=DEFAULT_ASSISTANT_PROMPT,
        help="System prompt for the assistant task.",
    )
    parser.add_argument("--input", default=None, help="Request text for the assistant task; stored before generating.")
    parser.add_argument("--reset", action="store_true", help="Reset the task's inputs and results and exit.")
    return parser.parse_args()


async def run(args: argparse.Namespace, console: Console) -> None:
    config = load_config(args.dotenv)
    configure_logging(config.log_level, console=console)

    store = PersistedStore(FileBackend(config.storage.root_dir))
    context = TaskContext.create(GeminiClient(config.gemini), store)

    if args.task == "copy":
        task = MarketingCopyTask(context)
        if args.reset:
            task.reset()
            return
        result = await task.generate()
        console.print(result.text)
    elif args.task == "outreach":
        task = ColdOutreachTask(context)
        if args.reset:
            task.reset()
            return
        email = await task.generate()
        console.print(f"[bold]Subject:[/bold] {email.title}")
        console.print(email.body)
        if email.expert_notes:
            console.print(f"[cyan]Expert notes:[/cyan] {email.expert_notes}")
        if email.suggestions:
            console.print(f"[cyan]Suggestions:[/cyan] {email.suggestions}")
    elif args.task == "assistant":
        task = GenericAssistantTask(context, args.module, args.system_prompt)
        if args.reset:
            task.reset()
            return
        if args.input is not None:
            task.inputs.update(text=args.input)
        result = await task.generate()
        console.print(result.text)
    elif args.task == "leads":
        task = LeadGenTask(context)
        if args.reset:
            task.reset()
            return
        results = await task.generate()
        console.print(results.analysis)
        for source in results.sources:
            console.print(f"[cyan]{source.title or source.uri}[/cyan] {source.uri}")
    elif args.task == "product":
        task = ProductListingTask(context)
        if args.reset:
            task.reset()
            return
        listing = await task.generate()
        table = Table("Attribute", "Value")
        for attribute in listing.attributes:
            table.add_row(attribute.param, attribute.value)
        console.print(*listing.titles, sep="\n")
        console.print(table)
    elif args.task == "fission":
        task = ProductFissionTask(context)
        if args.reset:
            task.reset()
            return
        variant = await task.generate()
        console.print(f"[bold]{variant.title}[/bold]")
        for index, bullet in enumerate(variant.bullets, start=1):
            console.print(f"#{index:02d} {bullet}")
        console.print(f"[cyan]Main image:[/cyan] {variant.main_image_prompt}")
        for prompt in variant.sub_image_prompts:
            console.print(f"[cyan]Sub image:[/cyan] {prompt}")
    elif args.task == "image":
        task = ImageAssistantTask(context)
        if args.reset:
            task.reset()
            return
        if args.source_image:
            task.set_source_image(args.source_image.read_bytes())
            prompt = await task.reverse_prompt()
            console.print(f"[bold]Reversed prompt:[/bold] {prompt}")
        result = await task.generate()
        if result.is_empty:
            console.print("[yellow]No usable image returned.[/yellow]")
            return
        args.output_dir.mkdir(parents=True, exist_ok=True)
        for index, image in enumerate(result.images, start=1):
            suffix = image.mime_type.split("/")[-1]
            path = args.output_dir / f"image-{index}.{suffix}"
            path.write_bytes(image.data)
            console.print(f"[green]Saved[/green] {path}")
    else:
        task = VideoScriptTask(context)
        if args.reset:
            task.reset()
            return
        if args.task == "script":
            script = await task.generate_script()
            console.print(f"[bold]{script.title}[/bold] ({script.duration}, {script.aspect_ratio})")
            for scene in script.scenes:
                console.print(f"Scene {scene.id}: {scene.visual_description}")
            return
        outcomes = await task.render_scenes(args.scene, console=console)
        for outcome in outcomes:
            if outcome.result is not None:
                console.print(f"[green]{outcome.name}[/green] {outcome.result.download_url}")
            else:
                console.print(f"[red]{outcome.name}[/red] {outcome.error}")


def main() -> None:
    args = parse_args()
    console = Console()
    try:
        asyncio.run(run(args, console))
    except GenerationError as exc:
        console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
