from __future__ import annotations

from ..lib import reporter
from ..lib.platform_detect import Platform, detect
from ..pipeline import RunContext, RunState, StageResult


class DetectPlatformStage:
    stage_id = "20_detect_platform"
    run_state = RunState.DETECTING

    def run(self, ctx: RunContext) -> StageResult:
        ctx.platform = detect()
        if ctx.platform is Platform.UNKNOWN:
            reporter.print_warning("Could not identify this platform")
        else:
            reporter.print_info(f"Detected platform: {ctx.platform.value}")
        # "unknown" is a valid answer; the dispatcher decides it is fatal.
        return StageResult.success()
