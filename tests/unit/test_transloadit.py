"""Tests for Transloadit upload signatures."""
import hashlib
import hmac
import json
from datetime import datetime, timezone

import pytest

from mediaflow.errors import ConfigurationError
from mediaflow.integrations import create_upload_signature
from mediaflow.integrations.transloadit import format_expires

NOW = datetime(2026, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


class TestUploadSignature:
    def test_params_layout(self, settings):
        signature = create_upload_signature(settings, now=NOW)

        params = json.loads(signature.params)
        assert params == {
            "auth": {"key": "test-transloadit-key", "expires": "2026-01-01T13:00:00.123Z"},
            "steps": {":original": {"robot": "/upload/handle"}},
        }
        assert signature.url == "https://api2.transloadit.com/assemblies"

    def test_params_are_compact_json(self, settings):
        signature = create_upload_signature(settings, now=NOW)

        assert " " not in signature.params
        assert signature.params.startswith('{"auth":{"key":')

    def test_signature_is_hmac_sha1_of_params(self, settings):
        signature = create_upload_signature(settings, now=NOW)

        expected = hmac.new(
            b"test-transloadit-secret", signature.params.encode("utf-8"), hashlib.sha1
        ).hexdigest()
        assert signature.signature == expected
        assert len(signature.signature) == 40

    def test_ttl_from_settings(self, monkeypatch):
        monkeypatch.setenv("MEDIAFLOW_UPLOAD_SIGNATURE_TTL_S", "60")
        from mediaflow.config import get_settings, reset_settings

        reset_settings()
        signature = create_upload_signature(get_settings(), now=NOW)

        assert json.loads(signature.params)["auth"]["expires"] == "2026-01-01T12:01:00.123Z"

    @pytest.mark.parametrize("missing", ["MEDIAFLOW_TRANSLOADIT_KEY", "MEDIAFLOW_TRANSLOADIT_SECRET"])
    def test_missing_credentials(self, monkeypatch, missing):
        monkeypatch.delenv(missing)
        from mediaflow.config import get_settings, reset_settings

        reset_settings()

        with pytest.raises(ConfigurationError, match="not configured"):
            create_upload_signature(get_settings())


def test_format_expires_converts_to_utc():
    from datetime import timedelta

    local = datetime(2026, 6, 1, 2, 0, 0, tzinfo=timezone(timedelta(hours=2)))

    assert format_expires(local) == "2026-06-01T00:00:00.000Z"
