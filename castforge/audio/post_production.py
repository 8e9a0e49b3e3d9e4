"""
Post-production: the ordered mastering chain applied to the merged track.

Each stage writes its own scratch artifact. A stage's output is trusted
only once it exists and is non-empty; the previous artifact is removed only
after that. If any stage fails, the last trusted artifact is published as
the edited track.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..errors import PipelineError, StageError
from ..models import EditResult, StageArtifact
from ..session import SessionContext
from ..storage.object_store import ObjectStore
from ..utils.files import file_size, safe_unlink, verify_file_ready
from .ffmpeg import FFmpegRunner
from .filters import AudioStage, default_stages

logger = logging.getLogger(__name__)

EDITED_BUCKET = "edited"


class PostProductionPipeline:
    def __init__(
        self,
        store: ObjectStore,
        ffmpeg: FFmpegRunner,
        stages: Optional[Sequence[AudioStage]] = None,
    ):
        self.store = store
        self.ffmpeg = ffmpeg
        self.stages: List[AudioStage] = list(stages) if stages is not None else default_stages()

    @classmethod
    def from_settings(cls, store: ObjectStore, ffmpeg: FFmpegRunner, settings) -> "PostProductionPipeline":
        return cls(store, ffmpeg, default_stages(fade_seconds=settings.fade_seconds))

    async def _run_stage(self, stage: AudioStage, source: Path, output: Path) -> StageArtifact:
        duration = None
        if stage.needs_duration:
            duration = await self.ffmpeg.probe_duration(source)
            logger.info(f"Track duration before {stage.stage_id}: {duration}")

        filter_expr = stage.render(duration)
        try:
            await self.ffmpeg.apply_filter(source, output, filter_expr)
        except PipelineError as e:
            raise StageError(f"Stage {stage.stage_id} failed: {e}", stage_id=stage.stage_id) from e

        if not verify_file_ready(output):
            raise StageError(f"Stage {stage.stage_id} produced no output", stage_id=stage.stage_id)

        return StageArtifact(stage_id=stage.stage_id, path=str(output), byte_size=file_size(output), valid=True)

    async def process(self, ctx: SessionContext, input_path: Union[str, Path]) -> EditResult:
        """
        Run every stage over ``input_path`` and publish the edited track.

        Raises:
            StageError: The input itself is missing or empty, so there is
                nothing to fall back to.
        """
        input_path = Path(input_path)
        if not verify_file_ready(input_path):
            raise StageError(f"Edit input missing or empty: {input_path}", stage_id="input")

        current = StageArtifact(stage_id="input", path=str(input_path), byte_size=file_size(input_path), valid=True)
        scratch: List[Path] = [input_path]
        applied: List[str] = []
        failed_stage: Optional[str] = None

        try:
            for number, stage in enumerate(self.stages, start=1):
                output = ctx.scratch_path(f"stage{number}_{stage.stage_id}.mp3")
                scratch.append(output)
                logger.info(f"[{ctx.session_id}] Stage {number}/{len(self.stages)}: {stage.stage_id}")
                try:
                    artifact = await self._run_stage(stage, Path(current.path), output)
                except StageError as e:
                    failed_stage = stage.stage_id
                    logger.warning(
                        f"{e}. Falling back to last valid artifact ({current.stage_id})",
                        extra={"session_id": ctx.session_id},
                    )
                    break

                safe_unlink(current.path)
                current = artifact
                applied.append(stage.stage_id)

            data = await asyncio.to_thread(Path(current.path).read_bytes)
            key = f"{ctx.session_id}_edited.mp3"
            url = await self.store.put_buffer(EDITED_BUCKET, key, data, "audio/mpeg")
        finally:
            for path in scratch:
                safe_unlink(path)

        result = EditResult(
            key=key,
            url=url,
            byte_size=len(data),
            applied_stages=applied,
            failed_stage=failed_stage,
            fell_back=failed_stage is not None,
        )
        logger.info(
            f"Edited track published for {ctx.session_id}: {len(applied)}/{len(self.stages)} stages applied"
            + (f", fell back after {failed_stage}" if failed_stage else "")
        )
        return result
