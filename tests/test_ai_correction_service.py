"""
tests/test_ai_correction_service.py
"""

from __future__ import annotations

import json
from datetime import date

from app.config import AICorrectionSettings
from app.domain.ai_correction import CorrectionOutcome
from app.normalizers.record_normalizer import DeterministicNormalizer
from app.services.ai_correction_service import AICorrectionAgent, build_import_schema
from app.validators.record_validator import RecordValidator, ValidationPolicy
from llm_correction.adapter import BaseChatAdapter, LLMTransportError
from llm_correction.credentials import CredentialResolver

SETTINGS = AICorrectionSettings(max_attempts=1, retry_delay_seconds=0.0)


class StageAdapter(BaseChatAdapter):
    """Answers each correction-stage call from a per-stage reply."""

    def __init__(self, *, detection="{}", evolution='{"suggestions": []}', correction="[]") -> None:
        self.replies = {"detection": detection, "evolution": evolution, "correction": correction}
        self.prompts: list[tuple[str, str]] = []

    def generate(self, prompt: str, system_prompt: str = "") -> str:
        self.prompts.append((system_prompt, prompt))
        if "detect errors" in prompt:
            stage = "detection"
        elif "SQL database expert" in system_prompt:
            stage = "evolution"
        else:
            stage = "correction"
        reply = self.replies[stage]
        if isinstance(reply, Exception):
            raise reply
        return reply


class AcceptingEvolver:
    def __init__(self) -> None:
        self.proposals: list[tuple[str, str]] = []

    def propose_column(self, name: str, data_type: str) -> bool:
        self.proposals.append((name, data_type))
        return True


def _resolver(environ=None) -> CredentialResolver:
    return CredentialResolver(
        provider="groq",
        env_var="GROQ_API_KEY",
        environ={"GROQ_API_KEY": "test-key"} if environ is None else environ,
    )


def _agent(adapter: BaseChatAdapter | None = None, *, environ=None, schema_evolver=None) -> AICorrectionAgent:
    return AICorrectionAgent(
        credential_resolver=_resolver(environ),
        adapter_factory=lambda credential, model: adapter,
        settings=SETTINGS,
        normalizer=DeterministicNormalizer(),
        validator=RecordValidator(ValidationPolicy(), today=lambda: date(2024, 1, 1)),
        schema_evolver=schema_evolver,
        sleep=lambda _: None,
    )


def _records() -> list[dict]:
    return [
        {
            "identifier": "12345678",
            "full_name": "juan perez",
            "amount": "1.500",
            "due_date": "31/12/2024",
            "counterparty_name": "Banco Estado",
            "_original_index": 1,
        },
        {
            "identifier": "11111111",
            "full_name": "ANA SOTO",
            "amount": "200",
            "due_date": "2025-03-01",
            "counterparty_name": "Banco Estado",
            "_original_index": 2,
        },
    ]


def _corrected(**overrides) -> list[dict]:
    rows = [
        {
            "identifier": "12.345.678-5",
            "full_name": "Juan Perez",
            "amount": 1500,
            "due_date": "2024-12-31",
            "counterparty_name": "Banco Estado",
        },
        {
            "identifier": "11.111.111-1",
            "full_name": "Ana Soto",
            "amount": 200,
            "due_date": "2025-03-01",
            "counterparty_name": "Banco Estado",
        },
    ]
    rows[0].update(overrides)
    return rows


def test_without_credential_matches_deterministic_normalization() -> None:
    records = _records()

    result = _agent(environ={}).correct(records)

    assert result.outcome == CorrectionOutcome.FALLBACK
    assert result.records == DeterministicNormalizer().normalize_records(records)
    assert "groq" in result.notes[0]


def test_provider_outage_falls_back_without_raising() -> None:
    outage = LLMTransportError("connection reset")
    adapter = StageAdapter(detection=outage, correction=outage)
    records = _records()

    result = _agent(adapter).correct(records)

    assert result.fallback
    assert result.records == DeterministicNormalizer().normalize_records(records)
    assert result.errors[0]["type"] == "ai_analysis_failed"


def test_adapter_factory_error_is_contained() -> None:
    def broken_factory(credential, model):
        raise RuntimeError("bad endpoint")

    agent = AICorrectionAgent(
        credential_resolver=_resolver(),
        adapter_factory=broken_factory,
        settings=SETTINGS,
        normalizer=DeterministicNormalizer(),
        validator=RecordValidator(ValidationPolicy()),
    )

    result = agent.correct(_records())

    assert result.outcome == CorrectionOutcome.FALLBACK
    assert "bad endpoint" in result.notes[0]


def test_clean_model_output_is_used_and_metadata_restored() -> None:
    adapter = StageAdapter(
        detection=json.dumps({"has_errors": True, "errors": [{"field": "identifier", "row": 1, "message": "format"}]}),
        correction="```json\n" + json.dumps(_corrected()) + "\n```",
    )

    result = _agent(adapter).correct(_records())

    assert result.outcome == CorrectionOutcome.AI_SUCCESS
    assert result.ai_ran
    assert result.records[0]["identifier"] == "12.345.678-5"
    assert result.records[0]["_original_index"] == 1
    assert result.records[1]["_original_index"] == 2
    assert result.errors[0]["field"] == "identifier"
    assert all("_original_index" not in prompt for _, prompt in adapter.prompts)


def test_invalid_model_output_is_partial() -> None:
    adapter = StageAdapter(correction=json.dumps(_corrected(amount=-5)))

    result = _agent(adapter).correct(_records())

    assert result.outcome == CorrectionOutcome.AI_PARTIAL
    assert result.ai_ran
    assert "still invalid" in result.notes[0]


def test_wrong_record_count_falls_back() -> None:
    adapter = StageAdapter(correction=json.dumps(_corrected()[:1]))
    records = _records()

    result = _agent(adapter).correct(records)

    assert result.fallback
    assert result.records == DeterministicNormalizer().normalize_records(records)
    assert "expected 2 records" in result.notes[0]


def test_unknown_fields_are_dropped_when_no_column_is_created() -> None:
    records = _records()
    for record in records:
        record["region"] = "RM"
    corrected = _corrected()
    for record in corrected:
        record["region"] = "Metropolitana"
    adapter = StageAdapter(
        evolution=json.dumps({"suggestions": [{"field": "region", "should_create": True, "data_type": "TEXT"}]}),
        correction=json.dumps(corrected),
    )

    result = _agent(adapter).correct(records)

    assert result.unknown_fields == ["region"]
    assert result.fields_dropped == ["region"]
    assert result.fields_created == []
    assert all("region" not in record for record in result.records)


def test_unknown_fields_survive_when_evolver_creates_column() -> None:
    records = _records()
    records[0]["region"] = "RM"
    corrected = _corrected(region="Metropolitana")
    evolver = AcceptingEvolver()
    adapter = StageAdapter(
        detection=json.dumps({"unknownFields": ["region"]}),
        evolution=json.dumps([{"field": "region", "shouldCreate": True, "dataType": "VARCHAR(50)"}]),
        correction=json.dumps(corrected),
    )

    result = _agent(adapter, schema_evolver=evolver).correct(records)

    assert evolver.proposals == [("region", "VARCHAR(50)")]
    assert result.fields_created == ["region"]
    assert result.fields_dropped == []
    assert result.records[0]["region"] == "Metropolitana"


def test_schema_extra_columns_are_known_fields() -> None:
    records = _records()
    records[0]["branch"] = "Santiago"
    adapter = StageAdapter(correction=json.dumps(_corrected(branch="Santiago")))

    result = _agent(adapter).correct(records, build_import_schema(extra_columns=["branch", "amount"]))

    assert result.unknown_fields == []
    assert result.records[0]["branch"] == "Santiago"


def test_empty_input() -> None:
    result = _agent(StageAdapter()).correct([])

    assert result.fallback
    assert result.records == []
