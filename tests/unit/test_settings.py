"""
Unit tests for Settings.
"""

import pytest
from pydantic import ValidationError


class TestSettings:
    """Tests for settings defaults and cross-field checks."""

    def test_defaults_keep_chunks_within_provider_limit(self):
        """Test default chunks are never cut before synthesis."""
        from castforge.config.settings import Settings

        settings = Settings(_env_file=None)
        assert settings.max_chunk_chars <= settings.provider_text_limit

    def test_chunk_size_above_provider_limit_rejected(self):
        """Test chunks larger than the provider accepts are refused at load."""
        from castforge.config.settings import Settings

        with pytest.raises(ValidationError, match="PROVIDER_TEXT_LIMIT"):
            Settings(_env_file=None, max_chunk_chars=5800, provider_text_limit=2800)

    def test_equal_limits_accepted(self):
        """Test a chunk size equal to the provider limit is allowed."""
        from castforge.config.settings import Settings

        settings = Settings(_env_file=None, max_chunk_chars=3000, provider_text_limit=3000)
        assert settings.max_chunk_chars == 3000

    def test_has_r2_credentials(self, settings):
        """Test any single R2 connection setting counts as an R2 setup."""
        assert not settings.has_r2_credentials()
        settings.r2_endpoint = "https://acct.r2.cloudflarestorage.com"
        assert settings.has_r2_credentials()

    def test_buckets_cover_every_alias(self, settings):
        """Test buckets() and public_bases() list every alias."""
        from castforge.config.settings import BUCKET_ALIASES

        settings.r2_bucket_podcast = "podcast-bucket"
        assert set(settings.buckets()) == set(BUCKET_ALIASES)
        assert settings.buckets()["podcast"] == "podcast-bucket"
        assert set(settings.public_bases()) == set(BUCKET_ALIASES)
