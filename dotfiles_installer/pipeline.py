from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from .config import InstallerConfig
from .lib.platform_detect import Platform

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    START = "start"
    ACQUIRING = "acquiring"
    DETECTING = "detecting"
    DISPATCHING = "dispatching"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class StageResult:
    ok: bool
    cause: Optional[str] = None
    exit_code: int = 0

    @classmethod
    def success(cls) -> "StageResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, cause: str, exit_code: int = 1) -> "StageResult":
        # A failed stage never reports success to the shell.
        return cls(ok=False, cause=cause, exit_code=exit_code or 1)


@dataclass
class RunContext:
    """Everything one run knows; nothing here outlives the process."""

    config: InstallerConfig
    platform: Optional[Platform] = None
    state: RunState = RunState.START
    history: List[RunState] = field(default_factory=lambda: [RunState.START])

    def enter(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)


class Stage(Protocol):
    """A single idempotent stage."""

    stage_id: str
    run_state: RunState

    def run(self, ctx: RunContext) -> StageResult:
        ...


@dataclass(frozen=True)
class PipelineResult:
    ok: bool
    exit_code: int
    ran_stages: List[str]
    failed_stage: Optional[str] = None
    cause: Optional[str] = None


def run_pipeline(*, ctx: RunContext, stages: Sequence[Stage]) -> PipelineResult:
    """Run stages in order; the first failure ends the run. Nothing is retried."""

    ran: List[str] = []

    for stage in stages:
        ctx.enter(stage.run_state)
        logger.info("Running stage %s", stage.stage_id)
        result = stage.run(ctx)
        ran.append(stage.stage_id)

        if not result.ok:
            ctx.enter(RunState.FAILED)
            logger.error("Stage %s failed: %s", stage.stage_id, result.cause)
            return PipelineResult(
                ok=False,
                exit_code=result.exit_code,
                ran_stages=ran,
                failed_stage=stage.stage_id,
                cause=result.cause,
            )

    ctx.enter(RunState.DONE)
    return PipelineResult(ok=True, exit_code=0, ran_stages=ran)
