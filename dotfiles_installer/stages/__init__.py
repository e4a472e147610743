from .stage_10_acquire import AcquireStage
from .stage_20_detect_platform import DetectPlatformStage
from .stage_30_dispatch import DispatchStage

__all__ = [
    "AcquireStage",
    "DetectPlatformStage",
    "DispatchStage",
]
