"""
Unit tests for post-production stage definitions.
"""

import pytest
from pydantic import ValidationError


class TestDefaultStages:
    """Tests for the default mastering chain."""

    def test_stage_order(self):
        """Test stages run in the mastering order."""
        from castforge.audio.filters import default_stages

        ids = [s.stage_id for s in default_stages()]
        assert ids == ["pitch", "eq_lowmid", "eq_high", "deess", "compress", "limit", "stereo", "fades"]

    def test_rendered_filters(self):
        """Test each stage renders its ffmpeg filter expression."""
        from castforge.audio.filters import default_stages

        rendered = {s.stage_id: s.render() for s in default_stages() if not s.needs_duration}

        assert rendered["pitch"] == "rubberband=pitch=0.93:tempo=1"
        assert rendered["eq_lowmid"] == "equalizer=f=100:t=q:w=1.1:g=3.5"
        assert rendered["eq_high"] == (
            "equalizer=f=2200:t=q:w=1.5:g=1.5,"
            "equalizer=f=4500:t=q:w=2:g=-2.8,"
            "equalizer=f=8500:t=h:g=-2"
        )
        assert rendered["deess"] == "deesser=i=0.4:m=0.75:f=0.5"
        assert rendered["compress"] == "acompressor=threshold=-20dB:ratio=4:attack=15:release=250:makeup=3"
        assert rendered["limit"] == "alimiter=limit=0.95:attack=5:release=100"
        assert rendered["stereo"] == "pan=stereo|c0=c0|c1=c0"


class TestFade:
    """Tests for duration-dependent fades."""

    def test_long_track_places_fade_out_at_end(self):
        """Test a 10s track with 3s fades positions the fade-out at 7s."""
        from castforge.audio.filters import Fade

        assert Fade(seconds=3.0).render(10.0) == "afade=t=in:st=0:d=3,afade=t=out:st=7:d=3"

    def test_short_track_uses_positionless_fades(self):
        """Test a track no longer than twice the fade gets the simple form."""
        from castforge.audio.filters import Fade

        assert Fade(seconds=3.0).render(6.0) == "afade=t=in:d=3,afade=t=out:d=3"
        assert Fade(seconds=3.0).render(5.0) == "afade=t=in:d=3,afade=t=out:d=3"

    def test_fade_longer_than_clip_never_starts_negative(self):
        """Test an 8s clip with 10s fades avoids a negative fade-out start."""
        from castforge.audio.filters import Fade

        rendered = Fade(seconds=10.0).render(8.0)
        assert rendered == "afade=t=in:d=10,afade=t=out:d=10"
        assert "st=-" not in rendered

    def test_unknown_duration_uses_positionless_fades(self):
        """Test a failed probe falls back to the simple form."""
        from castforge.audio.filters import Fade

        assert Fade().render(None) == "afade=t=in:d=3,afade=t=out:d=3"


class TestStageValidation:
    """Tests for parameter validation."""

    def test_invalid_compressor_ratio_rejected(self):
        """Test a ratio below 1 is refused."""
        from castforge.audio.filters import Compressor

        with pytest.raises(ValidationError):
            Compressor(ratio=0.5)

    def test_limiter_above_unity_rejected(self):
        """Test a limit above 1.0 is refused."""
        from castforge.audio.filters import Limiter

        with pytest.raises(ValidationError):
            Limiter(limit=1.5)

    def test_number_formatting(self):
        """Test numbers render without trailing zeros."""
        from castforge.audio.filters import fmt

        assert fmt(3.0) == "3"
        assert fmt(0.930) == "0.93"
        assert fmt(-2.8) == "-2.8"
        assert fmt(1234.5678) == "1234.568"
