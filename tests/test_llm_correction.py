import pytest

from llm_correction.adapter import BaseChatAdapter, LLMTransportError
from llm_correction.credentials import CredentialResolver, StoredCredential, TTLCache
from llm_correction.prompt_builder import CorrectionPromptBuilder
from llm_correction.retry import LLMRetryExhaustedError, generate_with_retry
from llm_correction.schema import SchemaDescription, SchemaField
from llm_correction.schema_evolver import (
    DecliningSchemaEvolver,
    SQLSchemaEvolver,
    normalize_column_name,
    normalize_column_type,
)
from llm_correction.validator import (
    LLMOutputValidationError,
    parse_column_suggestions,
    parse_corrected_records,
    parse_detection_report,
)


class ScriptedAdapter(BaseChatAdapter):
    def __init__(self, outcomes) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0

    def generate(self, prompt: str, system_prompt: str = "") -> str:
        self.calls += 1
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


def test_corrected_records_accept_fenced_json() -> None:
    raw = '```json\n[{"identifier": "12.345.678-5"}]\n```'

    assert parse_corrected_records(raw, expected_length=1) == [{"identifier": "12.345.678-5"}]


def test_corrected_records_accept_prose_around_array() -> None:
    raw = 'Here are the records:\n[{"a": 1}, {"a": 2}]\nLet me know if you need more.'

    assert parse_corrected_records(raw, expected_length=2) == [{"a": 1}, {"a": 2}]


def test_corrected_records_unwrap_records_key() -> None:
    assert parse_corrected_records('{"records": [{"a": 1}]}', expected_length=1) == [{"a": 1}]


@pytest.mark.parametrize(
    "raw, stage",
    [
        ("not json at all", "json_parse"),
        ('[{"a": 1}]', "schema"),
        ("[1, 2]", "schema"),
        ('{"status": "ok"}', "schema"),
    ],
)
def test_corrected_records_rejections(raw: str, stage: str) -> None:
    with pytest.raises(LLMOutputValidationError) as exc_info:
        parse_corrected_records(raw, expected_length=2)

    assert exc_info.value.stage == stage
    assert exc_info.value.raw_response == raw


def test_detection_report_accepts_camel_case() -> None:
    raw = (
        '{"hasErrors": true, "errors": [{"type": "invalid_format", "field": "identifier", '
        '"row": "row_2", "message": "bad check digit"}], "unknownFields": ["region"]}'
    )

    report = parse_detection_report(raw)

    assert report.has_errors is True
    assert report.errors[0].row == 2
    assert report.unknown_fields == ["region"]
    assert report.missing_fields == []


def test_detection_report_requires_object() -> None:
    with pytest.raises(LLMOutputValidationError) as exc_info:
        parse_detection_report("[]")

    assert exc_info.value.stage == "schema"


def test_column_suggestions_accept_bare_list() -> None:
    raw = '[{"field": "region", "shouldCreate": true, "dataType": "VARCHAR(50)", "reason": "useful"}]'

    report = parse_column_suggestions(raw)

    assert len(report.suggestions) == 1
    assert report.suggestions[0].should_create is True
    assert report.suggestions[0].data_type == "VARCHAR(50)"


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


def test_retry_recovers_after_transient_error() -> None:
    adapter = ScriptedAdapter([LLMTransportError("timeout"), "[]"])
    sleeps = []

    raw = generate_with_retry(adapter, "p", max_attempts=2, delay_seconds=0.5, sleep=sleeps.append)

    assert raw == "[]"
    assert adapter.calls == 2
    assert sleeps == [0.5]


def test_retry_does_not_repeat_non_retryable_error() -> None:
    adapter = ScriptedAdapter([LLMTransportError("unauthorized", retryable=False, status_code=401), "[]"])

    with pytest.raises(LLMTransportError):
        generate_with_retry(adapter, "p", max_attempts=3, sleep=lambda _: None)

    assert adapter.calls == 1


def test_retry_exhaustion_reports_history() -> None:
    adapter = ScriptedAdapter([LLMTransportError(f"down {i}") for i in range(3)])
    sleeps = []

    with pytest.raises(LLMRetryExhaustedError) as exc_info:
        generate_with_retry(adapter, "p", max_attempts=3, delay_seconds=1.0, sleep=sleeps.append)

    assert exc_info.value.attempts == 3
    assert len(exc_info.value.history) == 3
    assert str(exc_info.value.last_error) == "down 2"
    assert sleeps == [1.0, 1.0]


# ---------------------------------------------------------------------------
# Credentials and model catalog
# ---------------------------------------------------------------------------


def test_ttl_cache_reloads_after_expiry() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl=10.0, clock=clock)
    loads = []

    def loader():
        loads.append(clock.now)
        return ["model"]

    cache.get(loader)
    clock.now = 9.0
    cache.get(loader)
    clock.now = 10.5
    cache.get(loader)
    cache.get(loader, force_refresh=True)

    assert loads == [0.0, 10.5, 10.5]


def test_stored_credential_wins_over_environment() -> None:
    stored = StoredCredential(provider="groq", api_key="stored-key", models=["m1"])
    resolver = CredentialResolver(
        provider="groq",
        env_var="GROQ_API_KEY",
        default_base_url="https://example.test/v1",
        lookup=lambda provider: stored,
        environ={"GROQ_API_KEY": "env-key"},
    )

    credential = resolver.resolve()

    assert credential.api_key == "stored-key"
    assert credential.source == "store"
    assert credential.base_url == "https://example.test/v1"


def test_environment_fallback_and_missing_credential() -> None:
    def broken_lookup(provider):
        raise RuntimeError("table missing")

    with_env = CredentialResolver(
        provider="groq",
        env_var="GROQ_API_KEY",
        lookup=broken_lookup,
        environ={"GROQ_API_KEY": " env-key "},
    )
    without_env = CredentialResolver(
        provider="groq",
        env_var="GROQ_API_KEY",
        lookup=lambda provider: StoredCredential(provider="groq", api_key=None),
        environ={},
    )

    assert with_env.resolve().api_key == "env-key"
    assert with_env.resolve().source == "env"
    assert without_env.resolve() is None


def test_model_catalog_is_cached_and_drives_selection() -> None:
    clock = FakeClock()
    lookups = []

    def lookup(provider):
        lookups.append(provider)
        return StoredCredential(provider=provider, api_key="k", models=["alpha", "beta"])

    resolver = CredentialResolver(
        provider="groq",
        env_var="GROQ_API_KEY",
        lookup=lookup,
        catalog_ttl_seconds=60.0,
        environ={},
        clock=clock,
    )

    assert resolver.select_model("beta") == "beta"
    assert resolver.select_model("gamma") == "alpha"
    assert len(lookups) == 1

    clock.now = 61.0
    resolver.list_models()
    assert len(lookups) == 2


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def test_correction_prompt_carries_count_and_records() -> None:
    schema = SchemaDescription(fields=(SchemaField(name="identifier", data_type="string", required=True),))
    records = [{"identifier": "12345678"}, {"identifier": "1-9"}]

    system_prompt, user_prompt = CorrectionPromptBuilder().build_correction_prompt(schema, records, [])

    assert "exactly 2 corrected records" in system_prompt
    assert '"identifier"' in system_prompt
    assert "12345678" in user_prompt


# ---------------------------------------------------------------------------
# Schema evolution
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("text", "TEXT"),
        ("varchar(50)", "VARCHAR(50)"),
        ("float", "NUMERIC(14,2)"),
        ("numeric(10, 2)", "NUMERIC(10, 2)"),
        ("TEXT; DROP TABLE obligations", None),
        ("", None),
    ],
)
def test_normalize_column_type(raw, expected) -> None:
    assert normalize_column_type(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Region", "region"),
        ("branch_code", "branch_code"),
        ("id", None),
        ("created_at", None),
        ("bad-name", None),
        ("1st", None),
    ],
)
def test_normalize_column_name(raw, expected) -> None:
    assert normalize_column_name(raw) == expected


def test_declining_evolver_never_creates() -> None:
    assert DecliningSchemaEvolver().propose_column("region", "TEXT") is False


def test_sql_evolver_rejects_unsafe_proposals_without_ddl() -> None:
    class ExplodingEngine:
        def begin(self):
            raise AssertionError("no DDL expected")

    evolver = SQLSchemaEvolver(ExplodingEngine())

    assert evolver.propose_column("id", "TEXT") is False
    assert evolver.propose_column("region", "BLOB") is False

    with pytest.raises(ValueError):
        SQLSchemaEvolver(ExplodingEngine(), table="Obligations; --")
