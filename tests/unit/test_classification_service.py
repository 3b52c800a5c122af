"""Tests for app/services/classification_service.py: inference, heuristic fallback, upsert."""

import asyncio
import json

from app.schemas.openai import OpenAIError, OpenAIErrorType
from app.services.classification_service import ClassificationService


def classify(inference, repository, document):
    return asyncio.run(ClassificationService(inference, repository).classify(document))


class TestInference:

    def test_uses_model_output(self, make_inference, repository, document, classification_output):
        inference = make_inference(json.dumps(classification_output))
        result = classify(inference, repository, document)

        assert result.detected_type == "Employment"
        assert result.confidence == 0.93
        assert [p.name for p in result.parties] == ["Acme Corp", "John Smith"]
        assert not result.used_fallback
        assert inference.calls[0]["response_format"] == "json"

    def test_prompt_lists_vocabulary_and_truncates(self, make_inference, make_repository, make_document):
        document = make_document(text="x" * 40000)
        inference = make_inference('{"detected_type": "NDA"}')
        service = ClassificationService(inference, make_repository([document]), text_limit=30000)
        asyncio.run(service.classify(document))

        prompt = inference.calls[0]["prompt"]
        assert "- Data Processing Agreement" in prompt
        assert "x" * 30000 in prompt
        assert "x" * 30001 not in prompt

    def test_unknown_type_collapses(self, make_inference, repository, document):
        result = classify(make_inference('{"detected_type": "Prenup"}'), repository, document)
        assert result.detected_type == "Other"


class TestFallback:

    def test_unparseable_output(self, make_inference, repository, document):
        result = classify(make_inference("Sorry, I can't help with that."), repository, document)

        assert result.used_fallback
        assert result.confidence == 0.0
        assert [p.name for p in result.parties] == ["Acme Corp", "John Smith"]
        assert result.detected_type == "Other"
        assert result.reasoning == "Contract type could not be determined"

    def test_transport_failure(self, make_inference, repository, document):
        inference = make_inference(OpenAIError("timeout", OpenAIErrorType.NETWORK))
        result = classify(inference, repository, document)

        assert result.used_fallback
        assert [p.name for p in result.parties] == ["Acme Corp", "John Smith"]

    def test_domain_rejection_falls_back(self, make_inference, repository, document):
        result = classify(make_inference('{"error": "Not a contract"}'), repository, document)
        assert result.used_fallback

    def test_keyword_type_on_full_text(self, make_inference, make_repository, make_document):
        # Employment cue sits beyond the prompt text limit
        document = make_document(text="Filler. " * 5000 + "The Employee receives benefits.")
        service = ClassificationService(make_inference("not json"), make_repository([document]), text_limit=100)
        result = asyncio.run(service.classify(document))

        assert result.detected_type == "Employment"
        assert result.reasoning == "Detected from contract text keywords"


class TestPersistence:

    def test_inserts_partial_record(self, make_inference, repository, document, classification_output):
        classify(make_inference(json.dumps(classification_output)), repository, document)

        record = repository.analyses[0]
        assert record.score is None
        assert record.detected_type == "Employment"
        assert [p["name"] for p in record.parties] == ["Acme Corp", "John Smith"]
        assert record.parties_detected_at is not None

    def test_second_run_updates_in_place(self, make_inference, repository, document, classification_output):
        classify(make_inference(json.dumps(classification_output)), repository, document)
        classify(make_inference('{"detected_type": "NDA", "parties": []}'), repository, document)

        assert len(repository.analyses) == 1
        record = repository.analyses[0]
        assert record.detected_type == "NDA"
        # Empty party list does not replace stored parties
        assert [p["name"] for p in record.parties] == ["Acme Corp", "John Smith"]

    def test_terminal_record_untouched(self, make_inference, repository, document, classification_output):
        asyncio.run(repository.insert_analysis(document.id, detected_type="MSA", score=75, favorable=True))
        classify(make_inference(json.dumps(classification_output)), repository, document)

        record = repository.analyses[0]
        assert record.detected_type == "MSA"
        assert repository.updates == 0

    def test_does_not_touch_document(self, make_inference, repository, document, classification_output):
        classify(make_inference(json.dumps(classification_output)), repository, document)
        assert document.detected_type is None
        assert document.text.startswith("This Agreement")
