from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Union

import click

from .command import fmt_argv

logger = logging.getLogger(__name__)

Command = Union[str, Sequence[str]]


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int
    label: str
    output_lines: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _emit(text: str, color: str) -> None:
    # click drops the ANSI codes when stdout is not a terminal.
    click.echo(click.style(text, fg=color))


def print_success(msg: str) -> None:
    _emit(f"   [✔] {msg}", "green")


def print_error(msg: str) -> None:
    _emit(f"   [✖] {msg}", "red")


def print_warning(msg: str) -> None:
    _emit(f"   [!] {msg}", "yellow")


def print_info(msg: str) -> None:
    _emit(f"   [i] {msg}", "magenta")


def print_title(msg: str) -> None:
    _emit(f"\n   {msg}\n", "magenta")


def print_result(exit_code: int, label: str) -> int:
    if exit_code == 0:
        print_success(label)
    else:
        print_error(label)
    return exit_code


def print_error_stream(lines: Sequence[str]) -> None:
    for line in lines:
        print_error(f"↳ ERROR: {line}")


def _describe(command: Command) -> str:
    return command if isinstance(command, str) else fmt_argv(command)


def run(
    command: Command,
    label: Optional[str] = None,
    *,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ExecutionResult:
    """Run one command with captured output and a one-line verdict.

    Strings are run through the shell; sequences are exec'd directly.
    Combined stdout/stderr goes to an anonymous temporary file (removed by
    the OS when closed, including when the spawn itself fails) and is only
    shown, indented under the failure line, when the command exits non-zero.

    A non-zero exit is returned, never raised. ``OSError`` from the spawn
    propagates.
    """

    text = label or _describe(command)
    logger.info("RUN [%s] %s", text, _describe(command))

    shell = isinstance(command, str)
    args = command if shell else list(command)

    with tempfile.TemporaryFile() as buf:
        p = subprocess.run(
            args,
            shell=shell,
            stdin=subprocess.DEVNULL,
            stdout=buf,
            stderr=subprocess.STDOUT,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
        buf.seek(0)
        output = buf.read().decode("utf-8", errors="replace")

    lines = output.splitlines()
    result = ExecutionResult(exit_code=p.returncode, label=text, output_lines=lines)

    logger.info("EXIT %s [%s]", p.returncode, text)
    if output:
        logger.debug("OUTPUT %s", output.strip())

    print_result(result.exit_code, text)
    if not result.ok:
        print_error_stream(result.output_lines)

    return result
