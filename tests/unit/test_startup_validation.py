"""
Unit tests for startup validation.
"""

from unittest.mock import MagicMock, patch

import pytest


def _r2_settings(settings):
    settings.r2_endpoint = "https://acct.r2.cloudflarestorage.com"
    settings.r2_access_key_id = "id"
    settings.r2_secret_access_key = "secret"
    for alias in ("chunks", "merged", "edited", "podcast", "meta"):
        setattr(settings, f"r2_bucket_{alias}", f"{alias}-bucket")
        setattr(settings, f"r2_public_base_url_{alias}", f"https://{alias}.example.com")
    return settings


class TestObjectStoreValidation:
    """Tests for validate_object_store."""

    def test_missing_credentials(self, settings):
        """Test validation fails without R2 credentials."""
        from castforge.config.startup_validation import ServiceStatus, validate_object_store

        result = validate_object_store(settings)
        assert result.status == ServiceStatus.UNAVAILABLE
        assert "R2_ENDPOINT" in result.message

    def test_missing_bucket(self, settings):
        """Test validation names the missing bucket variable."""
        from castforge.config.startup_validation import ServiceStatus, validate_object_store

        _r2_settings(settings)
        settings.r2_bucket_meta = None

        result = validate_object_store(settings)
        assert result.status == ServiceStatus.UNAVAILABLE
        assert "R2_BUCKET_META" in result.message

    def test_complete_configuration(self, settings):
        """Test validation passes with credentials and buckets."""
        from castforge.config.startup_validation import ServiceStatus, validate_object_store

        result = validate_object_store(_r2_settings(settings))
        assert result.status == ServiceStatus.AVAILABLE


class TestProviderValidation:
    """Tests for validate_tts_provider."""

    def test_elevenlabs_short_key(self, settings):
        """Test a short ElevenLabs key is rejected."""
        from castforge.config.startup_validation import ServiceStatus, validate_tts_provider

        settings.tts_provider = "elevenlabs"
        settings.elevenlabs_api_key = "short"

        result = validate_tts_provider(settings)
        assert result.status == ServiceStatus.UNAVAILABLE
        assert "invalid" in result.message.lower()

    def test_polly_without_credentials(self, settings):
        """Test Polly is unavailable without AWS credentials."""
        from castforge.config.startup_validation import ServiceStatus, validate_tts_provider

        with patch("boto3.session.Session") as mock_session:
            mock_session.return_value.get_credentials.return_value = None
            result = validate_tts_provider(settings)

        assert result.status == ServiceStatus.UNAVAILABLE
        assert "AWS" in result.message

    def test_polly_with_credentials(self, settings):
        """Test Polly is available when credentials resolve."""
        from castforge.config.startup_validation import ServiceStatus, validate_tts_provider

        with patch("boto3.session.Session") as mock_session:
            mock_session.return_value.get_credentials.return_value = MagicMock()
            result = validate_tts_provider(settings)

        assert result.status == ServiceStatus.AVAILABLE


class TestRunStartupValidation:
    """Tests for the aggregate run."""

    def test_missing_tools_fail_validation(self, settings):
        """Test missing ffmpeg makes validation fail."""
        from castforge.config.startup_validation import run_startup_validation

        settings.ffmpeg_path = "definitely-not-ffmpeg-xyz"
        with patch("boto3.session.Session") as mock_session:
            mock_session.return_value.get_credentials.return_value = MagicMock()
            validation = run_startup_validation(settings, require_object_store=False, print_summary=False)

        assert not validation.is_valid
        assert any("definitely-not-ffmpeg-xyz" in e for e in validation.errors)
        assert any("Object Store" in w for w in validation.warnings)

    def test_exit_on_failure(self, settings):
        """Test exit_on_failure exits the process."""
        from castforge.config.startup_validation import run_startup_validation

        with pytest.raises(SystemExit):
            run_startup_validation(settings, exit_on_failure=True, print_summary=False)

    def test_require_valid_raises(self, settings):
        """Test require_valid raises ConfigurationError listing errors."""
        from castforge.config.startup_validation import require_valid
        from castforge.errors import ConfigurationError

        with pytest.raises(ConfigurationError, match="Object Store"):
            require_valid(settings)

    def test_partial_r2_setup_is_required(self, settings):
        """Test credentials without a bucket map fail even when R2 is optional."""
        from castforge.config.startup_validation import run_startup_validation

        _r2_settings(settings)
        settings.r2_public_base_url_chunks = None
        with patch("boto3.session.Session") as mock_session:
            mock_session.return_value.get_credentials.return_value = MagicMock()
            validation = run_startup_validation(settings, require_object_store=False, print_summary=False)

        assert not validation.is_valid
        assert validation.storage_mode == "r2"
        assert any("R2_PUBLIC_BASE_URL_CHUNKS" in e for e in validation.errors)

    def test_partial_r2_setup_exits(self, settings):
        """Test a produce run with half-configured R2 stops before any session."""
        from castforge.config.startup_validation import run_startup_validation

        settings.r2_endpoint = "https://acct.r2.cloudflarestorage.com"
        with pytest.raises(SystemExit):
            run_startup_validation(settings, require_object_store=False, exit_on_failure=True, print_summary=False)


class TestSummary:
    """Tests for the printed summary."""

    def test_local_mode_summary(self, settings):
        """Test a local run names the in-memory store and the settings to set."""
        from castforge.config.startup_validation import run_startup_validation

        settings.ffmpeg_path = "definitely-not-ffmpeg-xyz"
        settings.ffprobe_path = "definitely-not-ffprobe-xyz"
        with patch("boto3.session.Session") as mock_session:
            mock_session.return_value.get_credentials.return_value = MagicMock()
            validation = run_startup_validation(settings, require_object_store=False, print_summary=False)

        lines = validation.summary_lines()
        assert lines[0] == "castforge startup checks (storage: memory)"
        assert "[FAIL] Audio Tools: Not found on PATH: definitely-not-ffmpeg-xyz, definitely-not-ffprobe-xyz" in lines
        assert any(line.strip() == "set: PODCAST_INTRO_URL, PODCAST_OUTRO_URL" for line in lines)
        assert lines[-1] == "Not ready: 1 blocking problem(s)"

    def test_print_summary(self, settings, capsys):
        """Test print_summary writes the summary lines."""
        from castforge.config.startup_validation import ServiceStatus, StartupValidation, ValidationResult

        validation = StartupValidation()
        validation.add(ValidationResult("Audio Tools", ServiceStatus.AVAILABLE, "ffmpeg and ffprobe available"))
        validation.print_summary()

        out = capsys.readouterr().out
        assert "[OK  ] Audio Tools: ffmpeg and ffprobe available" in out
        assert out.strip().endswith("Ready")
