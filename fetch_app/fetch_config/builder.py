"""
Configuration builder for the fetch dialog.

Turns raw form state into validated ``FetchOptions``. Stored values from the
last successful submission fill in every field the user did not touch.
"""
import logging
import re
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

from fetch_backend.models import (
    ConcurrencyMode,
    DateRangeMode,
    FetchMode,
    FetchOptions,
    Provider,
    ResponseLanguage,
    is_valid_arxiv_id,
)
from . import store as keys
from .models import BuildResult, FormState, ValidationFailure
from .store import PersistedConfigStore

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ["cs.AI", "cs.LG"]
DEFAULT_MAX_PAPERS = 10
DEFAULT_DAYS_BACK = 7
DEFAULT_MIN_RELEVANCE = 60
DEFAULT_DEEP_ANALYSIS_THRESHOLD = 70
DEFAULT_MAX_CONCURRENT = 1
MAX_CONCURRENT_LIMIT = 5

# Form field -> persisted key
FIELD_KEYS = {
    "provider": keys.KEY_PROVIDER,
    "mode": keys.KEY_MODE,
    "categories": keys.KEY_CATEGORIES,
    "max_papers": keys.KEY_MAX_PAPERS,
    "date_range_mode": keys.KEY_DATE_RANGE_MODE,
    "days_back": keys.KEY_DAYS_BACK,
    "date_from": keys.KEY_DATE_FROM,
    "date_to": keys.KEY_DATE_TO,
    "min_relevance": keys.KEY_MIN_RELEVANCE,
    "deep_analysis": keys.KEY_DEEP_ANALYSIS,
    "deep_analysis_threshold": keys.KEY_DEEP_ANALYSIS_THRESHOLD,
    "concurrency_mode": keys.KEY_CONCURRENCY_MODE,
    "max_concurrent": keys.KEY_MAX_CONCURRENT,
    "response_language": keys.KEY_LANGUAGE,
    "arxiv_ids": keys.KEY_ARXIV_IDS,
}

_ID_SEPARATORS = re.compile(r"[,\s]+")


def split_arxiv_ids(raw: Any) -> List[str]:
    """Split comma/whitespace separated ID text (or a list) into trimmed IDs."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(item).strip() for item in raw if str(item).strip()]
    return [item for item in _ID_SEPARATORS.split(str(raw)) if item]


def _split_categories(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set)):
        return [str(item).strip() for item in raw if str(item).strip()]
    return [item.strip() for item in str(raw).split(",") if item.strip()]


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("expected a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return int(str(value).strip())


def _parse_optional_int(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and value.strip() in ("", "null")):
        return None
    return _parse_int(value)


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off", ""):
        return False
    raise ValueError(f"expected true or false, got {value!r}")


def _parse_date(value: Any) -> Optional[date]:
    if value is None or str(value).strip() == "":
        return None
    return date.fromisoformat(str(value).strip())


class ConfigurationBuilder:
    """Builds ``FetchOptions`` from dialog form state."""

    def __init__(
        self,
        store: PersistedConfigStore,
        has_credential: Callable[[Provider], bool],
        default_categories: Optional[Sequence[str]] = None,
        default_provider: Provider = Provider.GLM,
    ):
        self.store = store
        self.has_credential = has_credential
        self.default_categories = list(default_categories or DEFAULT_CATEGORIES)
        self.default_provider = default_provider

    @property
    def has_any_credential(self) -> bool:
        return any(self.has_credential(p) for p in Provider)

    def defaults(self) -> Dict[str, Any]:
        """Last persisted values, falling back to hard-coded defaults."""
        s = self.store
        return {
            "provider": s.get_str(keys.KEY_PROVIDER, self.default_provider.value, [p.value for p in Provider]),
            "mode": s.get_str(keys.KEY_MODE, FetchMode.BY_CATEGORY.value, [m.value for m in FetchMode]),
            "categories": s.get_list(keys.KEY_CATEGORIES, self.default_categories),
            "max_papers": s.get_int(keys.KEY_MAX_PAPERS, DEFAULT_MAX_PAPERS, minimum=1),
            "date_range_mode": s.get_str(
                keys.KEY_DATE_RANGE_MODE, DateRangeMode.PRESET.value, [m.value for m in DateRangeMode]
            ),
            "days_back": s.get_optional_int(keys.KEY_DAYS_BACK, DEFAULT_DAYS_BACK, minimum=0),
            "date_from": s.get_str(keys.KEY_DATE_FROM, ""),
            "date_to": s.get_str(keys.KEY_DATE_TO, ""),
            "min_relevance": s.get_int(keys.KEY_MIN_RELEVANCE, DEFAULT_MIN_RELEVANCE, 0, 100),
            # No stored choice: deep analysis is on whenever a credential exists
            "deep_analysis": s.get_bool(keys.KEY_DEEP_ANALYSIS, self.has_any_credential),
            "deep_analysis_threshold": s.get_int(
                keys.KEY_DEEP_ANALYSIS_THRESHOLD, DEFAULT_DEEP_ANALYSIS_THRESHOLD, 0, 100
            ),
            "concurrency_mode": s.get_str(
                keys.KEY_CONCURRENCY_MODE, ConcurrencyMode.SEQUENTIAL.value, [m.value for m in ConcurrencyMode]
            ),
            "max_concurrent": s.get_int(
                keys.KEY_MAX_CONCURRENT, DEFAULT_MAX_CONCURRENT, 1, MAX_CONCURRENT_LIMIT
            ),
            "response_language": s.get_str(
                keys.KEY_LANGUAGE, ResponseLanguage.EN.value, [l.value for l in ResponseLanguage]
            ),
            "arxiv_ids": s.get_str(keys.KEY_ARXIV_IDS, ""),
        }

    def resolve(self, form: FormState) -> Dict[str, Any]:
        """Defaults with the user's touched fields layered on top."""
        values = self.defaults()
        values.update(form.values)
        return values

    def can_start(self, values: Dict[str, Any]) -> bool:
        """Quick pre-check for the start button: deep analysis needs a credential."""
        try:
            deep_analysis = parse_bool(values.get("deep_analysis"))
            provider = Provider(values.get("provider"))
        except ValueError:
            # Malformed values are reported properly by build()
            return True
        return not deep_analysis or self.has_credential(provider)

    def build(self, form: FormState, persist: bool = True) -> BuildResult:
        """Validate *form* and build options.

        Checks run in order: required fields for the selected mode, the arXiv
        ID pattern, then the deep-analysis credential. Touched fields are
        written back to the store only when every check passes. Callers that
        must commit first pass ``persist=False`` and call ``save`` later.
        """
        values = self.resolve(form)
        failures: List[ValidationFailure] = []
        parsed: Dict[str, Any] = {}

        self._check_required(values, parsed, failures)
        self._check_ids(parsed, failures)
        self._check_credential(parsed, failures)

        if failures:
            logger.info(f"Fetch options rejected: {'; '.join(f.reason for f in failures)}")
            return BuildResult(failures=failures)

        result = BuildResult(options=self._make_options(parsed), touched=self._touched_values(form, parsed))
        if persist:
            self.save(result)
        return result

    def save(self, result: BuildResult) -> None:
        """Write the touched fields of a successful build to the store."""
        if not result.ok or not result.touched:
            return
        self.store.set_many(result.touched)
        logger.debug(f"Persisted fetch options: {sorted(result.touched)}")

    # ------------------------------------------------------------------
    # Validation stages
    # ------------------------------------------------------------------

    def _check_required(self, values: Dict[str, Any], parsed: Dict[str, Any], failures: List[ValidationFailure]) -> None:
        def enum_field(name: str, enum_cls):
            try:
                parsed[name] = enum_cls(values[name])
            except ValueError:
                allowed = ", ".join(e.value for e in enum_cls)
                failures.append(ValidationFailure(name, f"{name} must be one of: {allowed}"))

        def int_field(name: str, minimum: int, maximum: Optional[int] = None):
            try:
                value = _parse_int(values[name])
            except (TypeError, ValueError):
                failures.append(ValidationFailure(name, f"{name} must be a whole number"))
                return
            if value < minimum or (maximum is not None and value > maximum):
                bound = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
                failures.append(ValidationFailure(name, f"{name} must be {bound}"))
                return
            parsed[name] = value

        def bool_field(name: str):
            try:
                parsed[name] = parse_bool(values[name])
            except ValueError:
                failures.append(ValidationFailure(name, f"{name} must be true or false"))

        enum_field("provider", Provider)
        enum_field("mode", FetchMode)
        enum_field("response_language", ResponseLanguage)
        enum_field("concurrency_mode", ConcurrencyMode)
        int_field("min_relevance", 0, 100)
        bool_field("deep_analysis")

        if parsed.get("deep_analysis"):
            int_field("deep_analysis_threshold", 0, 100)
        else:
            parsed["deep_analysis_threshold"] = self._lenient_int(values, "deep_analysis_threshold", DEFAULT_DEEP_ANALYSIS_THRESHOLD)

        if parsed.get("concurrency_mode") == ConcurrencyMode.CONCURRENT:
            int_field("max_concurrent", 1, MAX_CONCURRENT_LIMIT)
        else:
            parsed["max_concurrent"] = self._lenient_int(values, "max_concurrent", DEFAULT_MAX_CONCURRENT)

        mode = parsed.get("mode")
        if mode == FetchMode.BY_ID:
            ids = split_arxiv_ids(values.get("arxiv_ids"))
            if not ids:
                failures.append(ValidationFailure("arxiv_ids", "Enter at least one arXiv ID to fetch by ID"))
            parsed["ids"] = ids
            parsed["arxiv_ids_text"] = ", ".join(ids)
        elif mode == FetchMode.BY_CATEGORY:
            categories = _split_categories(values.get("categories"))
            if not categories:
                failures.append(ValidationFailure("categories", "Select at least one arXiv category"))
            parsed["categories"] = categories
            int_field("max_papers", 1)
            self._check_date_range(values, parsed, failures)

    def _check_date_range(self, values: Dict[str, Any], parsed: Dict[str, Any], failures: List[ValidationFailure]) -> None:
        try:
            range_mode = DateRangeMode(values.get("date_range_mode") or DateRangeMode.PRESET.value)
        except ValueError:
            failures.append(ValidationFailure("date_range_mode", "date_range_mode must be preset or custom"))
            return
        parsed["date_range_mode"] = range_mode

        if range_mode == DateRangeMode.PRESET:
            try:
                days_back = _parse_optional_int(values.get("days_back"))
            except (TypeError, ValueError):
                failures.append(ValidationFailure("days_back", "days_back must be a whole number or null for all time"))
                return
            if days_back is not None and days_back < 0:
                failures.append(ValidationFailure("days_back", "days_back cannot be negative"))
                return
            parsed["days_back"] = days_back
            return

        try:
            date_from = _parse_date(values.get("date_from"))
            date_to = _parse_date(values.get("date_to"))
        except ValueError:
            failures.append(ValidationFailure("date_from", "Custom dates must use the YYYY-MM-DD format"))
            return
        if date_from is None or date_to is None:
            failures.append(ValidationFailure("date_from", "A custom date range needs both a start and an end date"))
            return
        if date_from > date_to:
            failures.append(ValidationFailure("date_from", "The start date must not be after the end date"))
            return
        parsed["date_from"] = date_from.isoformat()
        parsed["date_to"] = date_to.isoformat()

    def _check_ids(self, parsed: Dict[str, Any], failures: List[ValidationFailure]) -> None:
        if parsed.get("mode") != FetchMode.BY_ID:
            return
        invalid = [arxiv_id for arxiv_id in parsed.get("ids", []) if not is_valid_arxiv_id(arxiv_id)]
        if invalid:
            failures.append(ValidationFailure(
                "arxiv_ids",
                f"Invalid arXiv IDs (expected YYMM.NNNNN or YYMM.NNNNNvV): {', '.join(invalid)}",
            ))

    def _check_credential(self, parsed: Dict[str, Any], failures: List[ValidationFailure]) -> None:
        provider = parsed.get("provider")
        if not parsed.get("deep_analysis") or provider is None:
            return
        if not self.has_credential(provider):
            failures.append(ValidationFailure(
                "deep_analysis",
                f"Deep analysis requires a {provider.value} API key. "
                "Please configure one in Settings or disable deep analysis.",
            ))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _lenient_int(values: Dict[str, Any], name: str, default: int) -> int:
        # The value is not used in the selected mode; keep it if it parses
        try:
            return _parse_int(values.get(name))
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _make_options(parsed: Dict[str, Any]) -> FetchOptions:
        mode = parsed["mode"]
        common = dict(
            provider=parsed["provider"],
            mode=mode,
            min_relevance=parsed["min_relevance"],
            deep_analysis=parsed["deep_analysis"],
            deep_analysis_threshold=min(max(parsed["deep_analysis_threshold"], 0), 100),
            concurrency_mode=parsed["concurrency_mode"],
            max_concurrent=min(max(parsed["max_concurrent"], 1), MAX_CONCURRENT_LIMIT),
            response_language=parsed["response_language"],
        )
        if mode == FetchMode.BY_ID:
            return FetchOptions(ids=tuple(parsed["ids"]), **common)

        if parsed["date_range_mode"] == DateRangeMode.CUSTOM:
            date_range = dict(days_back=None, date_from=parsed["date_from"], date_to=parsed["date_to"])
        else:
            date_range = dict(days_back=parsed["days_back"])
        return FetchOptions(
            categories=tuple(parsed["categories"]),
            max_papers=parsed["max_papers"],
            **date_range,
            **common,
        )

    @staticmethod
    def _touched_values(form: FormState, parsed: Dict[str, Any]) -> Dict[str, Any]:
        to_store: Dict[str, Any] = {}
        for name in form.touched_fields():
            key = FIELD_KEYS[name]
            if name == "arxiv_ids":
                to_store[key] = parsed.get("arxiv_ids_text", form.values[name])
            elif name in parsed:
                to_store[key] = parsed[name]
            else:
                # Touched but irrelevant to the selected mode; keep the raw choice
                to_store[key] = form.values[name]
        return to_store
