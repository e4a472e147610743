from __future__ import annotations

import argparse
import logging
from typing import Optional

from .config import InstallerConfig, load_config
from .errors import InstallerError
from .lib import reporter
from .lib.prereqs import report_requirements, verify_requirements
from .logging_utils import configure_logging
from .pipeline import PipelineResult, RunContext, run_pipeline
from .stages import AcquireStage, DetectPlatformStage, DispatchStage

logger = logging.getLogger(__name__)


def build_stages():
    return [
        AcquireStage(),
        DetectPlatformStage(),
        DispatchStage(),
    ]


def run(config: InstallerConfig) -> PipelineResult:
    """Acquire -> detect -> dispatch. The first failing stage ends the run."""

    ctx = RunContext(config=config)
    reporter.print_info("Starting dotfiles installation...")

    try:
        result = run_pipeline(ctx=ctx, stages=build_stages())
    except Exception:
        logger.exception("Installer failed in state %s", ctx.state.value)
        raise
    finally:
        logger.info("Run states: %s", " -> ".join(s.value for s in ctx.history))

    if result.ok:
        reporter.print_success("Dotfiles installation completed successfully!")
        reporter.print_info("Please start a new terminal session to load all configurations")
    else:
        reporter.print_error(f"Installation stopped at {result.failed_stage}: {result.cause}")
    return result


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dotfiles-install")
    p.add_argument("--config", default=None, help="YAML config (default: ~/.dotfiles-installer.yaml if present)")
    p.add_argument("--dir", default=None, help="Working copy location (default: ~/dotfiles)")
    p.add_argument("--branch", default=None, help="Upstream branch to track (default: main)")
    p.add_argument("--log", default=None, help="Log file (default: ~/.cache/dotfiles-installer/install.log)")
    p.add_argument("-v", "--verbose", action="store_true", help="Also log to the console")
    p.add_argument("--check", action="store_true", help="Only verify prerequisites, then exit")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config, dotfiles_dir=args.dir, branch=args.branch, log_path=args.log)
    except InstallerError as e:
        reporter.print_error(str(e))
        return 1

    configure_logging(log_path=config.log_path, also_console=bool(args.verbose))
    logger.info(
        "Config: repo=%s/%s branch=%s dir=%s",
        config.repo_owner,
        config.repo_name,
        config.branch,
        config.dotfiles_dir,
    )

    try:
        if args.check:
            return 0 if report_requirements(verify_requirements(config)) else 1
        return run(config).exit_code
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        reporter.print_error(f"Unexpected error: {e}")
        return 1
