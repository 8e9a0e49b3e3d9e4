"""
Typed post-production stage definitions.

Each stage is a pydantic model holding validated parameters and renders
its ffmpeg audio filter expression.
"""

from typing import ClassVar, List, Literal, Optional

from pydantic import BaseModel, Field


def fmt(value: float) -> str:
    """Render a number for a filter expression: 3.0 -> '3', 0.930 -> '0.93'."""
    text = format(round(float(value), 3), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


class AudioStage(BaseModel):
    """Base stage. ``needs_duration`` stages are rendered after probing."""

    stage_id: str
    needs_duration: ClassVar[bool] = False

    def render(self, duration: Optional[float] = None) -> str:
        raise NotImplementedError


class PitchShift(AudioStage):
    stage_id: str = "pitch"
    pitch: float = Field(default=0.93, gt=0)
    tempo: float = Field(default=1.0, gt=0)

    def render(self, duration: Optional[float] = None) -> str:
        return f"rubberband=pitch={fmt(self.pitch)}:tempo={fmt(self.tempo)}"


class EqualizerBand(BaseModel):
    frequency: float = Field(gt=0)
    width_type: Literal["q", "h", "o", "s", "k"] = "q"
    width: Optional[float] = Field(default=None, gt=0)
    gain: float = Field(ge=-30, le=30)

    def render(self) -> str:
        parts = [f"equalizer=f={fmt(self.frequency)}", f"t={self.width_type}"]
        if self.width is not None:
            parts.append(f"w={fmt(self.width)}")
        parts.append(f"g={fmt(self.gain)}")
        return ":".join(parts)


class Equalizer(AudioStage):
    bands: List[EqualizerBand] = Field(min_length=1)

    def render(self, duration: Optional[float] = None) -> str:
        return ",".join(band.render() for band in self.bands)


class DeEsser(AudioStage):
    stage_id: str = "deess"
    intensity: float = Field(default=0.4, ge=0, le=1)
    max_reduction: float = Field(default=0.75, ge=0, le=1)
    frequency: float = Field(default=0.5, ge=0, le=1)

    def render(self, duration: Optional[float] = None) -> str:
        return f"deesser=i={fmt(self.intensity)}:m={fmt(self.max_reduction)}:f={fmt(self.frequency)}"


class Compressor(AudioStage):
    stage_id: str = "compress"
    threshold_db: float = Field(default=-20, le=0)
    ratio: float = Field(default=4, ge=1, le=20)
    attack: float = Field(default=15, gt=0)
    release: float = Field(default=250, gt=0)
    makeup: float = Field(default=3, ge=1, le=64)

    def render(self, duration: Optional[float] = None) -> str:
        return (
            f"acompressor=threshold={fmt(self.threshold_db)}dB:ratio={fmt(self.ratio)}"
            f":attack={fmt(self.attack)}:release={fmt(self.release)}:makeup={fmt(self.makeup)}"
        )


class Limiter(AudioStage):
    stage_id: str = "limit"
    limit: float = Field(default=0.95, gt=0, le=1)
    attack: float = Field(default=5, gt=0)
    release: float = Field(default=100, gt=0)

    def render(self, duration: Optional[float] = None) -> str:
        return f"alimiter=limit={fmt(self.limit)}:attack={fmt(self.attack)}:release={fmt(self.release)}"


class StereoUpmix(AudioStage):
    stage_id: str = "stereo"

    def render(self, duration: Optional[float] = None) -> str:
        return "pan=stereo|c0=c0|c1=c0"


class Fade(AudioStage):
    """Fade in at the start and out at the end of the track."""

    stage_id: str = "fades"
    seconds: float = Field(default=3.0, gt=0)
    needs_duration: ClassVar[bool] = True

    def render(self, duration: Optional[float] = None) -> str:
        f = fmt(self.seconds)
        if duration is not None and duration > 2 * self.seconds:
            out_start = fmt(duration - self.seconds)
            return f"afade=t=in:st=0:d={f},afade=t=out:st={out_start}:d={f}"
        # Too short (or unknown length) to place the fade-out precisely
        return f"afade=t=in:d={f},afade=t=out:d={f}"


def default_stages(fade_seconds: float = 3.0) -> List[AudioStage]:
    """The mastering chain, in order."""
    return [
        PitchShift(),
        Equalizer(
            stage_id="eq_lowmid",
            bands=[EqualizerBand(frequency=100, width_type="q", width=1.1, gain=3.5)],
        ),
        Equalizer(
            stage_id="eq_high",
            bands=[
                EqualizerBand(frequency=2200, width_type="q", width=1.5, gain=1.5),
                EqualizerBand(frequency=4500, width_type="q", width=2.0, gain=-2.8),
                EqualizerBand(frequency=8500, width_type="h", gain=-2),
            ],
        ),
        DeEsser(),
        Compressor(),
        Limiter(),
        StereoUpmix(),
        Fade(seconds=fade_seconds),
    ]
