from __future__ import annotations

import asyncio
import logging
import re
import sys
import warnings
from typing import Any

import pytest

from devtools_agent.core.log_filter import (
    TOKEN_DUPLICATED_MESSAGE,
    FilteringStream,
    get_registry,
    suppress_output,
    with_log_filter,
)

NOISY = "Field 'usage' already exists in this message chunk and value has unsupported type"


def _snapshot() -> tuple[Any, Any, list[list[Any]]]:
    handlers = logging.getLogger().handlers
    return sys.stderr, warnings.showwarning, [list(handler.filters) for handler in handlers]


class RecordingShowWarning:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def __call__(self, message, category, filename, lineno, file=None, line=None) -> None:  # type: ignore[no-untyped-def]
        self.messages.append(str(message))


def test_warning_matching_predicate_is_dropped(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = RecordingShowWarning()
    monkeypatch.setattr(warnings, "showwarning", recorder)

    with warnings.catch_warnings():
        warnings.simplefilter("always")
        with suppress_output(TOKEN_DUPLICATED_MESSAGE):
            warnings.warn(NOISY)
            warnings.warn("unrelated deprecation notice")

    assert recorder.messages == ["unrelated deprecation notice"]
    assert warnings.showwarning is recorder


def test_log_records_matching_predicate_are_dropped(caplog: pytest.LogCaptureFixture) -> None:
    noisy_logger = logging.getLogger("tests.noisy_dependency")

    with caplog.at_level(logging.WARNING):
        with suppress_output(TOKEN_DUPLICATED_MESSAGE):
            noisy_logger.warning(NOISY)
            noisy_logger.error("request failed with status %s", 500)
        noisy_logger.warning("after scope: %s", NOISY)

    messages = [record.getMessage() for record in caplog.records]
    assert messages == ["request failed with status 500", f"after scope: {NOISY}"]


def test_stderr_text_writes_are_filtered(capsys: pytest.CaptureFixture[str]) -> None:
    with suppress_output(TOKEN_DUPLICATED_MESSAGE):
        written = sys.stderr.write(NOISY + "\n")
        sys.stderr.write("kept line\n")

    assert written == len(NOISY) + 1
    assert capsys.readouterr().err == "kept line\n"


def test_stderr_buffer_writes_are_filtered(capsys: pytest.CaptureFixture[str]) -> None:
    with suppress_output(TOKEN_DUPLICATED_MESSAGE):
        dropped = sys.stderr.buffer.write(NOISY.encode())
        sys.stderr.buffer.write(b"raw bytes\n")

    assert dropped == len(NOISY.encode())
    assert capsys.readouterr().err == "raw bytes\n"


def test_print_to_stderr_drops_the_whole_line(capsys: pytest.CaptureFixture[str]) -> None:
    with suppress_output(TOKEN_DUPLICATED_MESSAGE):
        print(NOISY, file=sys.stderr)
        print("kept line", file=sys.stderr)
        print(file=sys.stderr)

    assert capsys.readouterr().err == "kept line\n\n"


def test_unmatched_output_is_identical_to_direct_call(capsys: pytest.CaptureFixture[str]) -> None:
    sys.stderr.write("direct\n")
    direct = capsys.readouterr().err

    with suppress_output(TOKEN_DUPLICATED_MESSAGE):
        sys.stderr.write("direct\n")

    assert capsys.readouterr().err == direct


def test_callable_predicate(capsys: pytest.CaptureFixture[str]) -> None:
    with suppress_output(lambda message: message.startswith("DEBUG")):
        sys.stderr.write("DEBUG chatter\n")
        sys.stderr.write("INFO kept\n")

    assert capsys.readouterr().err == "INFO kept\n"


def test_sinks_restored_after_exception() -> None:
    before = _snapshot()

    with pytest.raises(RuntimeError):
        with suppress_output(TOKEN_DUPLICATED_MESSAGE):
            assert isinstance(sys.stderr, FilteringStream)
            assert warnings.showwarning is not before[1]
            raise RuntimeError("operation failed")

    assert _snapshot() == before
    assert get_registry().active is False


@pytest.mark.asyncio
async def test_with_log_filter_returns_result_and_restores() -> None:
    before = _snapshot()

    async def operation() -> str:
        await asyncio.sleep(0)
        assert get_registry().active is True
        return "result"

    assert await with_log_filter(TOKEN_DUPLICATED_MESSAGE, operation) == "result"
    assert _snapshot() == before


@pytest.mark.asyncio
async def test_with_log_filter_restores_on_failure() -> None:
    before = _snapshot()

    async def operation() -> None:
        await asyncio.sleep(0)
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        await with_log_filter(TOKEN_DUPLICATED_MESSAGE, operation)

    assert _snapshot() == before


def test_nested_scopes_compose(capsys: pytest.CaptureFixture[str]) -> None:
    before = _snapshot()

    with suppress_output(re.compile("outer-noise")):
        shim = sys.stderr
        with suppress_output(re.compile("inner-noise")):
            sys.stderr.write("outer-noise\n")
            sys.stderr.write("inner-noise\n")
        assert sys.stderr is shim
        sys.stderr.write("inner-noise\n")
        sys.stderr.write("outer-noise\n")

    assert _snapshot() == before
    assert capsys.readouterr().err == "inner-noise\n"


@pytest.mark.asyncio
async def test_overlapping_scopes_restore_only_after_last_exit() -> None:
    before = _snapshot()
    first_done = asyncio.Event()
    release_second = asyncio.Event()

    async def short() -> None:
        await asyncio.sleep(0)

    async def long() -> bool:
        await first_done.wait()
        still_active = get_registry().active and isinstance(sys.stderr, FilteringStream)
        await release_second.wait()
        return still_active

    second = asyncio.ensure_future(with_log_filter(re.compile("second"), long))
    await asyncio.sleep(0)
    await with_log_filter(re.compile("first"), short)
    first_done.set()
    await asyncio.sleep(0)
    release_second.set()

    assert await second is True
    assert _snapshot() == before


@pytest.mark.asyncio
async def test_invalid_arguments_leave_sinks_untouched() -> None:
    before = _snapshot()

    async def operation() -> None:
        return None

    with pytest.raises(TypeError):
        await with_log_filter("already exists", operation)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        await with_log_filter(TOKEN_DUPLICATED_MESSAGE, "not callable")  # type: ignore[arg-type]

    assert _snapshot() == before
