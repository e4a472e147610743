from __future__ import annotations

import logging

from ..lib import reporter
from ..lib.dispatch import dispatch
from ..lib.platform_detect import Platform
from ..pipeline import RunContext, RunState, StageResult

logger = logging.getLogger(__name__)


class DispatchStage:
    stage_id = "30_dispatch"
    run_state = RunState.DISPATCHING

    def run(self, ctx: RunContext) -> StageResult:
        platform = ctx.platform or Platform.UNKNOWN
        reporter.print_title(f"Platform Setup ({platform.value})")
        result = dispatch(platform, ctx.config.dotfiles_dir, ctx.config.platform_scripts)
        if not result.ok:
            return StageResult.failure(result.cause or "dispatch failed", exit_code=result.exit_code)
        return StageResult.success()
