from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

from pydantic import BaseModel, Field, ValidationError

from .errors import MissingTaskError, TaskFileError

TASK_FILE_SUFFIXES = (".json", ".txt")


class TaskFile(BaseModel):
    task: str = Field(..., min_length=1)

    model_config = {"extra": "ignore"}


def load_task_file(path: Path) -> str:
    """Read a task instruction from a ``.json`` or ``.txt`` file."""

    path = path.expanduser().resolve()
    suffix = path.suffix.lower()
    if suffix not in TASK_FILE_SUFFIXES:
        raise TaskFileError("不支持的任务文件类型：仅支持 .json 或 .txt")
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TaskFileError(f"无法读取任务文件 {path}: {exc}") from exc

    if suffix == ".json":
        try:
            data = TaskFile.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise TaskFileError("任务文件无效：必须包含非空字符串字段 task") from exc
        task = data.task.strip()
        if not task:
            raise TaskFileError("任务文件无效：必须包含非空字符串字段 task")
        return task

    task = content.strip()
    if not task:
        raise TaskFileError("任务文件为空：请在文本中填写任务指令")
    return task


def resolve_task(args: Sequence[str], task_file: Path | None = None, default_file: Path | None = None) -> str:
    """Pick the task from an explicit file, a lone file argument, ``default_file`` or the joined words.

    ``default_file`` yields to either file argument but is used over plain words.
    """

    if task_file is None and len(args) == 1 and args[0].lower().endswith(TASK_FILE_SUFFIXES):
        task_file = Path(args[0])
    if task_file is None:
        task_file = default_file
    if task_file is not None:
        return load_task_file(task_file)

    task = " ".join(args).strip()
    if not task:
        raise MissingTaskError("No task instruction given")
    return task
