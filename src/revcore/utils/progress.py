"""Rich progress display for the analysis pipeline."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import contextmanager
from typing import Generator

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

# (stage_name, completed_stages, total_stages)
StageCallback = Callable[[str, int, int], None]


def create_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        transient=True,
    )


@contextmanager
def stage_progress(description: str, total: int) -> Generator[StageCallback, None, None]:
    """Yield a stage callback that advances a single Rich task."""
    progress = create_progress()
    with progress:
        task_id = progress.add_task(description, total=total)

        def on_stage(stage: str, completed: int, stages: int) -> None:
            progress.update(
                task_id,
                completed=completed,
                total=stages,
                description=f"{description}: {stage}",
            )

        yield on_stage
