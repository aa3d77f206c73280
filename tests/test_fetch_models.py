"""
Tests for the fetch wire models and their parsing helpers.
"""
import json

import pytest
from pydantic import ValidationError

from fetch_backend.models import (
    ConcurrencyMode,
    ErrorInfo,
    ErrorKind,
    FetchMode,
    FetchOptions,
    FetchPhase,
    FetchStatus,
    Provider,
    clean_event_line,
    is_valid_arxiv_id,
    parse_progress_event,
)


class TestArxivIds:
    """Test the arXiv ID pattern."""

    @pytest.mark.parametrize("arxiv_id", ["2401.12345", "2401.1234", "2401.12345v2", " 2312.00001 "])
    def test_valid_ids(self, arxiv_id):
        assert is_valid_arxiv_id(arxiv_id)

    @pytest.mark.parametrize("arxiv_id", [
        "241.12345",
        "2401.123456789",
        "abc.12345",
        "2401.123",
        "2401.12345v",
        "\u0662\u0664\u0660\u0661.\u0661\u0662\u0663\u0664\u0665",
        "\uff12\uff14\uff10\uff11.12345",
        "2401.12345v\u0662",
    ])
    def test_invalid_ids(self, arxiv_id):
        assert not is_valid_arxiv_id(arxiv_id)


class TestFetchOptions:
    """Test FetchOptions and its command payload."""

    def test_category_payload(self):
        options = FetchOptions(
            provider=Provider.GLM,
            categories=("cs.AI", "cs.LG"),
            max_papers=20,
            days_back=3,
        )

        payload = options.to_command_payload()
        assert payload["llm_provider"] == "glm"
        assert payload["categories"] == ["cs.AI", "cs.LG"]
        assert payload["max_papers"] == 20
        assert payload["days_back"] == 3
        assert payload["fetch_by_id"] is False
        assert "arxiv_ids" not in payload
        assert "deep_analysis_threshold" not in payload
        assert "max_concurrent" not in payload

    def test_id_payload_keeps_submission_order(self):
        options = FetchOptions(
            provider=Provider.CLAUDE,
            mode=FetchMode.BY_ID,
            ids=("2401.12345", "2312.00001"),
            deep_analysis=True,
            deep_analysis_threshold=80,
            concurrency_mode=ConcurrencyMode.CONCURRENT,
            max_concurrent=3,
        )

        payload = options.to_command_payload()
        assert payload["fetch_by_id"] is True
        assert payload["arxiv_ids"] == ["2401.12345", "2312.00001"]
        assert "categories" not in payload
        assert payload["deep_analysis_threshold"] == 80
        assert payload["async_mode"] == "async"
        assert payload["max_concurrent"] == 3

    def test_custom_range_replaces_days_back(self):
        options = FetchOptions(
            provider=Provider.GLM,
            categories=("cs.CL",),
            days_back=None,
            date_from="2024-01-01",
            date_to="2024-01-31",
        )

        payload = options.to_command_payload()
        assert options.uses_custom_range
        assert payload["date_from"] == "2024-01-01"
        assert payload["date_to"] == "2024-01-31"
        assert "days_back" not in payload

    def test_all_time_omits_days_back(self):
        options = FetchOptions(provider=Provider.GLM, categories=("cs.AI",), days_back=None)
        assert "days_back" not in options.to_command_payload()

    def test_options_are_immutable(self):
        options = FetchOptions(provider=Provider.GLM, categories=("cs.AI",))
        with pytest.raises(ValidationError):
            options.max_papers = 50

    def test_max_concurrent_bounds(self):
        with pytest.raises(ValidationError):
            FetchOptions(provider=Provider.GLM, max_concurrent=6)
        with pytest.raises(ValidationError):
            FetchOptions(provider=Provider.GLM, max_papers=0)

    @pytest.mark.parametrize("fields", [
        {"mode": FetchMode.BY_ID},
        {"mode": FetchMode.BY_ID, "ids": ("2401.12345", "abc")},
        {"mode": FetchMode.BY_ID, "ids": ("\u0662\u0664\u0660\u0661.\u0661\u0662\u0663\u0664\u0665",)},
        {"categories": ()},
        {"categories": ("cs.AI",), "date_from": "2024-01-01", "date_to": "2024-01-31"},
        {"categories": ("cs.AI",), "days_back": None, "date_from": "2024-01-01"},
    ])
    def test_mode_rules_enforced(self, fields):
        with pytest.raises(ValidationError):
            FetchOptions(provider=Provider.GLM, **fields)

    def test_id_mode_ignores_category_fields(self):
        options = FetchOptions(provider=Provider.GLM, mode=FetchMode.BY_ID, ids=("2401.12345",))
        assert options.categories == ()


class TestErrorInfo:
    """Test error classification."""

    def test_backend_aliases(self):
        info = ErrorInfo.model_validate({"error_type": "llm_rate_limit", "message": "slow down", "is_retryable": True})
        assert info.kind == ErrorKind.LLM_RATE_LIMIT
        assert info.retryable is True

    def test_unknown_kind_becomes_system(self):
        info = ErrorInfo.model_validate({"kind": "disk_on_fire", "message": "boom"})
        assert info.kind == ErrorKind.SYSTEM

    def test_factories(self):
        assert ErrorInfo.system("down").retryable is True
        assert ErrorInfo.config("bad").retryable is False
        assert ErrorInfo(kind=ErrorKind.WARNING, message="partial").is_warning


class TestFetchStatus:
    """Test progress snapshots."""

    def test_status_alias_for_phase(self):
        status = FetchStatus.model_validate({"status": "analyzing", "progress": 0.5})
        assert status.phase == FetchPhase.ANALYZING

    def test_progress_must_be_fraction(self):
        with pytest.raises(ValidationError):
            FetchStatus(progress=1.5)

    def test_phase_helpers(self):
        assert FetchPhase.COMPLETED.is_terminal
        assert FetchPhase.ERROR.is_terminal
        assert not FetchPhase.FETCHING.is_terminal
        assert FetchPhase.FILTERING.is_active
        assert not FetchPhase.IDLE.is_active

    def test_concurrency_telemetry(self):
        assert not FetchStatus().has_concurrency_telemetry
        assert FetchStatus(queue_size=4, active_tasks=2).has_concurrency_telemetry

    def test_accounted_papers(self):
        status = FetchStatus(papers_found=10, papers_saved=4, papers_filtered=3, papers_duplicates=2)
        assert status.accounted_papers == 9


class TestParseProgressEvent:
    """Test progress event parsing."""

    def test_envelope(self):
        event = parse_progress_event(json.dumps({"seq": 4, "status": {"phase": "fetching", "progress": 0.2}}))
        assert event.seq == 4
        assert event.status.phase == FetchPhase.FETCHING
        assert event.status.progress == 0.2

    def test_bare_status_with_seq(self):
        event = parse_progress_event({"seq": 9, "status": "filtering", "papers_found": 12})
        assert event.seq == 9
        assert event.status.phase == FetchPhase.FILTERING
        assert event.status.papers_found == 12

    def test_sse_framed_bytes(self):
        event = parse_progress_event(b'data: {"status": "completed", "progress": 1.0}')
        assert event.seq is None
        assert event.status.phase == FetchPhase.COMPLETED

    def test_error_payload(self):
        event = parse_progress_event({
            "status": "error",
            "error": {"error_type": "llm_auth", "message": "bad key", "is_retryable": False},
        })
        assert event.status.error.kind == ErrorKind.LLM_AUTH
        assert event.status.error.retryable is False

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"status": "exploding"}', '{"progress": 7}'])
    def test_malformed_payloads(self, raw):
        with pytest.raises(ValueError, match="Failed to parse progress event"):
            parse_progress_event(raw)

    def test_clean_event_line(self):
        assert clean_event_line("  data: {}  ") == "{}"
        assert clean_event_line('{"a": 1}\n') == '{"a": 1}'
