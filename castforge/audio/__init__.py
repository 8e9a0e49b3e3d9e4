"""Audio processing: merging, mastering and final assembly"""
from .ffmpeg import FFmpegRunner
from .filters import default_stages
from .merge import MergeEngine, plan_rounds
from .mixdown import EpisodeMixer
from .post_production import PostProductionPipeline
from .sources import SourceLoader

__all__ = [
    "FFmpegRunner",
    "default_stages",
    "MergeEngine",
    "plan_rounds",
    "EpisodeMixer",
    "PostProductionPipeline",
    "SourceLoader",
]
