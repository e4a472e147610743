from __future__ import annotations

import logging

from ..lib import reporter
from ..lib.acquire import acquire
from ..pipeline import RunContext, RunState, StageResult

logger = logging.getLogger(__name__)


class AcquireStage:
    stage_id = "10_acquire"
    run_state = RunState.ACQUIRING

    def run(self, ctx: RunContext) -> StageResult:
        reporter.print_title("Dotfiles Repository")
        result = acquire(ctx.config)
        if not result.ok:
            return StageResult.failure(result.cause or "acquisition failed")
        logger.info("Acquired %s via %s", ctx.config.dotfiles_dir, result.strategy)
        return StageResult.success()
