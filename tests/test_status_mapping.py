"""
Status normalization and ProviderResult serialization.

Run with:
    python -m pytest tests/test_status_mapping.py -v
"""

import pytest

from photo2video.services.providers import (
    ErrorKind,
    NormalizedStatus,
    ProviderResult,
    TaskStatus,
    normalize_status,
)
from photo2video.services.providers.base import STATUS_MAP


class TestNormalizeStatus:

    @pytest.mark.parametrize("raw,expected", [
        ("pending", NormalizedStatus.PENDING),
        ("queued", NormalizedStatus.PENDING),
        ("processing", NormalizedStatus.PROCESSING),
        ("running", NormalizedStatus.PROCESSING),
        ("completed", NormalizedStatus.SUCCEEDED),
        ("succeeded", NormalizedStatus.SUCCEEDED),
        ("failed", NormalizedStatus.FAILED),
        ("error", NormalizedStatus.FAILED),
        ("canceled", NormalizedStatus.FAILED),
    ])
    def test_documented_statuses(self, raw, expected):
        assert normalize_status(raw) == expected

    def test_case_and_whitespace_ignored(self):
        assert normalize_status("  SUCCEEDED ") == NormalizedStatus.SUCCEEDED
        assert normalize_status("Running") == NormalizedStatus.PROCESSING

    @pytest.mark.parametrize("raw", ["", "exploded", "done?", None, 3, {"status": "ok"}])
    def test_unrecognized_maps_to_unknown(self, raw):
        assert normalize_status(raw) == NormalizedStatus.UNKNOWN

    def test_table_is_total(self):
        """Every mapped string lands on exactly one of the five values"""
        values = set(NormalizedStatus)
        assert len(values) == 5
        for raw, normalized in STATUS_MAP.items():
            assert normalize_status(raw) in values
            assert normalized != NormalizedStatus.UNKNOWN

    def test_custom_mapping(self):
        mapping = {"done": NormalizedStatus.SUCCEEDED}
        assert normalize_status("done", mapping) == NormalizedStatus.SUCCEEDED
        assert normalize_status("completed", mapping) == NormalizedStatus.UNKNOWN


class TestProviderResult:

    def test_failure_to_dict(self):
        result = ProviderResult.failure(ErrorKind.TRANSPORT, "timed out")
        assert not result.ok
        assert result.to_dict() == {"success": False, "error": "transport", "message": "timed out"}

    def test_success_to_dict_flattens_status(self):
        result = ProviderResult.success(TaskStatus(status=NormalizedStatus.PROCESSING, progress=40))
        data = result.to_dict()
        assert result.ok
        assert data["success"] is True
        assert data["status"] == "processing"
        assert data["progress"] == 40

    def test_error_str_includes_kind(self):
        result = ProviderResult.failure(ErrorKind.DISABLED, "no credentials")
        assert str(result.error) == "disabled: no credentials"
