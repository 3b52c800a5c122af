"""Tests for app/services/contract_pipeline.py: authorization, tagged results, post-steps."""

import asyncio
import copy
import json
import pytest
from sqlalchemy.exc import OperationalError

from app.schemas.pipeline import PipelineErrorType
from app.services.contract_pipeline import ContractPipeline


def db_error():
    return OperationalError("UPDATE documents", {}, Exception("connection lost"))


def record_fields(record):
    return copy.deepcopy({column.name: getattr(record, column.name) for column in record.__table__.columns})


@pytest.fixture
def make_pipeline(repository, make_inference):
    def _make(*responses, user_id="user-1", search=None):
        inference = make_inference(*responses)
        return ContractPipeline(repository, inference, search=search, user_id=user_id), inference
    return _make


class TestAuthorization:

    def test_unauthenticated(self, make_pipeline):
        pipeline, inference = make_pipeline(user_id=None)
        result = asyncio.run(pipeline.classify(1))

        assert not result.success
        assert result.error_type == PipelineErrorType.UNAUTHORIZED
        assert inference.calls == []

    def test_other_owner(self, make_pipeline, repository):
        pipeline, inference = make_pipeline(user_id="user-2")
        result = asyncio.run(pipeline.analyze(1))

        assert result.error_type == PipelineErrorType.UNAUTHORIZED
        assert inference.calls == []
        assert repository.analyses == []

    def test_missing_document(self, make_pipeline):
        pipeline, _ = make_pipeline()
        result = asyncio.run(pipeline.converse(99, "Who are the parties?"))
        assert result.error_type == PipelineErrorType.NOT_FOUND

    def test_missing_text(self, make_pipeline, document):
        document.text = None
        pipeline, inference = make_pipeline()
        result = asyncio.run(pipeline.classify(1))

        assert result.error_type == PipelineErrorType.NOT_FOUND
        assert inference.calls == []


class TestClassify:

    def test_success_and_type_denormalized(self, make_pipeline, document, classification_output):
        pipeline, _ = make_pipeline(json.dumps(classification_output))
        result = asyncio.run(pipeline.classify(1))

        assert result.success
        assert result.classification.detected_type == "Employment"
        assert document.detected_type == "Employment"

    def test_other_never_denormalized(self, make_pipeline, document):
        pipeline, _ = make_pipeline('{"detected_type": "Other"}')
        asyncio.run(pipeline.classify(1))
        assert document.detected_type is None

    def test_existing_document_type_kept(self, make_pipeline, document):
        document.detected_type = "NDA"
        pipeline, _ = make_pipeline('{"detected_type": "MSA"}')
        asyncio.run(pipeline.classify(1))
        assert document.detected_type == "NDA"

    def test_heuristic_fallback(self, make_pipeline, repository):
        pipeline, _ = make_pipeline("garbage")
        result = asyncio.run(pipeline.classify(1))

        assert result.success
        assert [p.name for p in result.classification.parties] == ["Acme Corp", "John Smith"]
        assert [p["name"] for p in repository.analyses[0].parties] == ["Acme Corp", "John Smith"]

    def test_persistence_failure(self, make_pipeline, repository, classification_output):
        repository.fail("insert_analysis", db_error())
        pipeline, _ = make_pipeline(json.dumps(classification_output))
        result = asyncio.run(pipeline.classify(1))

        assert result.error_type == PipelineErrorType.PERSISTENCE_FAILURE
        assert "connection lost" not in result.error

    def test_denormalization_failure_does_not_fail(self, make_pipeline, repository, classification_output):
        repository.fail("set_document_type_if_unset", db_error())
        pipeline, _ = make_pipeline(json.dumps(classification_output))
        result = asyncio.run(pipeline.classify(1))

        assert result.success
        assert len(repository.analyses) == 1


class TestAnalyze:

    def test_idempotent(self, make_pipeline, repository, analysis_output):
        pipeline, inference = make_pipeline(json.dumps(analysis_output), json.dumps(analysis_output))

        first = asyncio.run(pipeline.analyze(1))
        snapshot = record_fields(repository.analyses[0])
        second = asyncio.run(pipeline.analyze(1))

        assert first.success
        assert second.error_type == PipelineErrorType.ALREADY_ANALYZED
        assert len(repository.analyses) == 1
        assert record_fields(repository.analyses[0]) == snapshot
        assert len(inference.calls) == 1

    def test_returned_type_matches_stored(self, make_pipeline, repository, document, make_analysis_output):
        asyncio.run(repository.insert_analysis(document.id, detected_type="NDA", score=None))
        pipeline, _ = make_pipeline(json.dumps(make_analysis_output(detected_type="Weird")))

        result = asyncio.run(pipeline.analyze(1))

        assert result.success
        assert result.analysis.detected_type == "NDA"
        assert repository.analyses[0].detected_type == "NDA"
        assert document.detected_type == "NDA"

    def test_merge_after_classification(self, make_pipeline, repository, classification_output, analysis_output):
        pipeline, _ = make_pipeline(json.dumps(classification_output), json.dumps(analysis_output))

        asyncio.run(pipeline.classify(1))
        result = asyncio.run(pipeline.analyze(1))

        assert result.success
        assert len(repository.analyses) == 1
        record = repository.analyses[0]
        assert record.score == 82
        assert [p["name"] for p in record.parties] == ["Acme Corp", "John Smith"]

    def test_classify_after_analysis_leaves_record(self, make_pipeline, repository, analysis_output):
        pipeline, _ = make_pipeline(json.dumps(analysis_output), '{"detected_type": "NDA"}')

        asyncio.run(pipeline.analyze(1))
        result = asyncio.run(pipeline.classify(1))

        assert result.success
        assert repository.analyses[0].detected_type == "Employment"
        assert repository.analyses[0].score == 82

    def test_domain_rejection_result(self, make_pipeline, repository):
        pipeline, _ = make_pipeline('{"error": "This is a poem."}')
        result = asyncio.run(pipeline.analyze(1))

        assert result.error_type == PipelineErrorType.DOMAIN_REJECTION
        assert result.error == "This is a poem."
        assert repository.analyses == []

    def test_type_denormalized_after_analysis(self, make_pipeline, document, analysis_output):
        pipeline, _ = make_pipeline(json.dumps(analysis_output))
        asyncio.run(pipeline.analyze(1))
        assert document.detected_type == "Employment"


class TestConverse:

    def test_answer(self, make_pipeline):
        pipeline, _ = make_pipeline("Acme Corp and John Smith.")
        result = asyncio.run(pipeline.converse(1, "Who are the parties?"))

        assert result.success
        assert result.answer.answer == "Acme Corp and John Smith."

    def test_inference_empty(self, make_pipeline):
        pipeline, _ = make_pipeline("")
        result = asyncio.run(pipeline.converse(1, "Who are the parties?"))
        assert result.error_type == PipelineErrorType.INFERENCE_EMPTY


class TestPartySelection:

    def test_save_and_read(self, make_pipeline, document):
        pipeline, _ = make_pipeline()

        saved = asyncio.run(pipeline.select_user_party(1, "  John Smith "))
        loaded = asyncio.run(pipeline.get_user_party(1))

        assert saved.party_name == "John Smith"
        assert loaded.party_name == "John Smith"
        assert document.user_selected_party == "John Smith"

    def test_clear(self, make_pipeline, document):
        document.user_selected_party = "Acme Corp"
        pipeline, _ = make_pipeline()

        result = asyncio.run(pipeline.select_user_party(1, ""))

        assert result.success
        assert result.party_name is None
        assert document.user_selected_party is None

    def test_other_owner_cannot_save(self, make_pipeline, document):
        pipeline, _ = make_pipeline(user_id="intruder")
        result = asyncio.run(pipeline.select_user_party(1, "Acme Corp"))

        assert result.error_type == PipelineErrorType.UNAUTHORIZED
        assert document.user_selected_party is None

    def test_save_failure(self, make_pipeline, repository):
        repository.fail("set_user_selected_party", db_error())
        pipeline, _ = make_pipeline()
        result = asyncio.run(pipeline.select_user_party(1, "Acme Corp"))
        assert result.error_type == PipelineErrorType.PERSISTENCE_FAILURE
