"""Shared pytest fixtures and fakes for the contract intelligence test suite."""

import pytest

from app.db.models.analysis_record import AnalysisRecord
from app.db.models.document import Document
from app.db.repository import AnalysisConflictError

ACME_TEXT = "This Agreement is between Acme Corp and John Smith."


# ---------------------------------------------------------------------------
# Fakes for injected collaborators
# ---------------------------------------------------------------------------

class FakeInference:
    """Inference stub returning queued responses and recording every call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate(self, prompt, response_format=None, **kwargs):
        self.calls.append({"prompt": prompt, "response_format": response_format, **kwargs})
        if not self.responses:
            raise AssertionError("Unexpected inference call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeSearch:
    """Search stub with a fixed payload (or error)."""

    def __init__(self, payload=None, error=None, configured=True):
        self.payload = payload
        self.error = error
        self.configured = configured
        self.calls = []

    def is_configured(self):
        return self.configured

    async def search(self, query, limit=3):
        self.calls.append({"query": query, "limit": limit})
        if self.error:
            raise self.error
        return self.payload


class FakeRepository:
    """In-memory stand-in for ContractRepository using the ORM model classes."""

    def __init__(self, documents=None):
        self.documents = {doc.id: doc for doc in documents or []}
        self.analyses = []
        self.inserts = 0
        self.updates = 0
        self.failures = {}

    def fail(self, method, error):
        self.failures[method] = error

    def _maybe_fail(self, method):
        if method in self.failures:
            raise self.failures[method]

    async def get_document(self, document_id):
        self._maybe_fail("get_document")
        return self.documents.get(document_id)

    async def get_latest_analysis(self, document_id):
        self._maybe_fail("get_latest_analysis")
        records = [record for record in self.analyses if record.document_id == document_id]
        return records[-1] if records else None

    async def insert_analysis(self, document_id, **fields):
        self._maybe_fail("insert_analysis")
        if any(record.document_id == document_id for record in self.analyses):
            raise AnalysisConflictError(f"Analysis already exists for document {document_id}")
        fields.setdefault("parties", [])
        record = AnalysisRecord(id=len(self.analyses) + 1, document_id=document_id, **fields)
        self.analyses.append(record)
        self.inserts += 1
        return record

    async def update_partial_analysis(self, analysis_id, **fields):
        self._maybe_fail("update_partial_analysis")
        for record in self.analyses:
            if record.id == analysis_id and record.score is None:
                for key, value in fields.items():
                    setattr(record, key, value)
                self.updates += 1
                return True
        return False

    async def set_document_type_if_unset(self, document_id, detected_type):
        self._maybe_fail("set_document_type_if_unset")
        document = self.documents.get(document_id)
        if document is None or document.detected_type:
            return False
        document.detected_type = detected_type
        return True

    async def set_user_selected_party(self, document_id, party_name):
        self._maybe_fail("set_user_selected_party")
        document = self.documents.get(document_id)
        if document is None:
            return False
        document.user_selected_party = party_name
        return True


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

def make_document(document_id=1, owner_id="user-1", text=ACME_TEXT, **kwargs):
    return Document(
        id=document_id,
        owner_id=owner_id,
        filename=kwargs.pop("filename", "contract.pdf"),
        text=text,
        pages=1,
        detected_type=kwargs.pop("detected_type", None),
        user_selected_party=kwargs.pop("user_selected_party", None),
    )


def make_analysis_output(**overrides):
    """A valid full-analysis payload as the model would return it."""
    data = {
        "detected_type": "Employment",
        "clauses": {
            "payment": {"amount": "$120,000 per year", "schedule": "Monthly", "late_fees": None},
            "liability": {"cap": None, "exclusions": "", "indemnity": None},
            "termination": {"notice": "30 days", "for_cause": None, "without_cause": None, "auto_renewal": "no"},
            "confidentiality": {"scope": "All business information", "duration": "2 years", "carve_outs": None},
            "ip": {"ownership": "Employer", "license": None, "derivatives": None},
            "law": {"governing_law": "Delaware", "jurisdiction": None, "dispute_resolution": "Arbitration"},
            "renewal": {"term_length": None, "renewal_window": None, "conditions": None},
        },
        "risks": [
            {"type": "Broad non-compete", "severity": "HIGH", "excerpt": "shall not compete", "note": "Two years"},
        ],
        "opportunities": [
            {"type": "Equity grant", "excerpt": "options", "note": "Negotiate vesting"},
        ],
        "score": 82,
        "summary": "A standard employment agreement.",
        "recommendations": "Narrow the non-compete.",
        "negotiation_points": ["Shorten the non-compete to 6 months"],
    }
    data.update(overrides)
    return data


@pytest.fixture
def acme_text():
    return ACME_TEXT


@pytest.fixture(name="make_document")
def make_document_fixture():
    return make_document


@pytest.fixture(name="make_analysis_output")
def make_analysis_output_fixture():
    return make_analysis_output


@pytest.fixture
def make_inference():
    return FakeInference


@pytest.fixture
def make_search():
    return FakeSearch


@pytest.fixture
def make_repository():
    return FakeRepository


@pytest.fixture
def document():
    return make_document()


@pytest.fixture
def repository(document):
    return FakeRepository([document])


@pytest.fixture
def analysis_output():
    return make_analysis_output()


@pytest.fixture
def classification_output():
    return {
        "detected_type": "Employment",
        "confidence": 0.93,
        "reasoning": "Mentions employer, employee and salary",
        "parties": [
            {"name": "Acme Corp", "role": "Employer", "description": "Hiring company"},
            {"name": "John Smith", "role": "Employee", "description": "New hire"},
        ],
    }
