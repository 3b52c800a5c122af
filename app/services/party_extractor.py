"""
Party Extractor
Pattern-based fallback that finds contract parties and type in raw text
when inference output is unusable.
"""

import re
import logging
from typing import List, Optional, Set

from app.schemas.contract_analysis import ContractType, Party

logger = logging.getLogger(__name__)

MAX_PARTIES = 5
MIN_NAME_LENGTH = 3

_ENTITY_SUFFIXES = r"(?:Inc|LLC|Ltd|Corp|Corporation|Company|Co|LLP|LP)"

# One capitalized word, optionally preceded by initials ("J. R. Smith")
_WORD = r"(?:[A-Z]\.[ \t]+)*[A-Z][\w&'\-]*"

# A dot after the last word is kept only when that word is an entity suffix,
# so "John Smith. The Employee" stops at "Smith"
_SUFFIX_DOT = r"(?:(?:" + "|".join(
    rf"(?<=\b{suffix})" for suffix in ("Inc", "LLC", "Ltd", "Corp", "Co", "LLP", "LP")
) + r")\.)?"

# Capitalized words on a single line: "Acme Corp", "John Smith", "Beta Co."
_NAME = rf"{_WORD}(?:[ \t]+(?:&[ \t]+)?{_WORD})*{_SUFFIX_DOT}"

EMPLOYMENT_KEYWORDS = ("employment", "employee", "employer", "job duties", "salary", "benefits")


class PartyExtractor:
    """
    Extracts parties from contract text with layered pattern families.

    Families run in order:
    1. "between X and Y" / "by and between X and Y"
    2. Role-labeled lines ("Employer: ...", "Employee: ...")
    3. "Party A/1/One" and "Party B/2/Two" labels
    4. Entity suffixes (Inc, LLC, Ltd, Corp, ...) - only if 1-3 found nothing
    """

    BETWEEN_PATTERN = re.compile(
        r"\b(?i:by[ \t]+and[ \t]+between|between)\s+"
        rf"(?P<first>{_NAME})"
        r"(?:[ \t]*\([^)\n]*\))?"          # (the "Company")
        r"(?:[ \t]*,[^,\n]{1,100},)?"      # , a Delaware corporation,
        r"[ \t]*,?\s+(?i:and)\s+"
        rf"(?P<second>{_NAME})"
    )

    ROLE_LINE_PATTERNS = [
        (re.compile(r"^[ \t]*(?i:employer|company|corporation)[ \t]*:[ \t]*(?P<name>[^\n]+)$", re.MULTILINE), "Employer"),
        (re.compile(r"^[ \t]*(?i:employee(?:[ \t]+name)?)[ \t]*:[ \t]*(?P<name>[^\n]+)$", re.MULTILINE), "Employee"),
    ]

    LABELED_PARTY_PATTERNS = [
        re.compile(rf"\b(?i:party)[ \t]+(?i:A|1|One)\b[ \t]*[:\-][ \t]*(?P<name>{_NAME})"),
        re.compile(rf"\b(?i:party)[ \t]+(?i:B|2|Two)\b[ \t]*[:\-][ \t]*(?P<name>{_NAME})"),
    ]

    ENTITY_PATTERN = re.compile(
        rf"\b(?P<name>(?:[A-Z][\w&'\-]*[ \t]+)+{_ENTITY_SUFFIXES}\b\.?)"
    )

    def __init__(self, max_parties: int = MAX_PARTIES):
        self.max_parties = max_parties

    def extract(self, text: str) -> List[Party]:
        """
        Extract up to max_parties parties from contract text.

        Args:
            text: Full (untruncated) contract text

        Returns:
            Parties in order of discovery, deduplicated by exact trimmed name
        """
        if not text:
            return []

        parties: List[Party] = []
        seen: Set[str] = set()

        for match in self.BETWEEN_PATTERN.finditer(text):
            self._add(parties, seen, match.group("first"), "Party")
            self._add(parties, seen, match.group("second"), "Party")

        for pattern, role in self.ROLE_LINE_PATTERNS:
            for match in pattern.finditer(text):
                self._add(parties, seen, match.group("name"), role)

        for pattern in self.LABELED_PARTY_PATTERNS:
            for match in pattern.finditer(text):
                self._add(parties, seen, match.group("name"), "Party")

        if not parties:
            for match in self.ENTITY_PATTERN.finditer(text):
                self._add(parties, seen, match.group("name"), "Entity")

        logger.info(f"Heuristic party extraction found {len(parties)} candidate(s)")
        return parties[:self.max_parties]

    def _add(self, parties: List[Party], seen: Set[str], raw_name: Optional[str], role: str) -> None:
        name = clean_party_name(raw_name)
        if len(name) < MIN_NAME_LENGTH or name in seen:
            return
        seen.add(name)
        parties.append(Party(
            name=name,
            role=role,
            description=f"Detected {role.lower()} from contract text"
        ))


def clean_party_name(raw_name: Optional[str]) -> str:
    """Trim whitespace and trailing punctuation, keeping abbreviation dots"""
    if not raw_name:
        return ""
    name = raw_name.strip().rstrip(",;:").strip()
    # "Beta Co." keeps its dot, "John Smith." does not
    if name.endswith(".") and not re.search(rf"\b{_ENTITY_SUFFIXES}\.$", name):
        name = name[:-1].rstrip()
    return name[:200]


def extract_parties(text: str, max_parties: int = MAX_PARTIES) -> List[Party]:
    """Extract parties from raw contract text"""
    return PartyExtractor(max_parties=max_parties).extract(text)


def detect_contract_type_from_keywords(text: str) -> str:
    """Keyword fallback for contract type detection"""
    lower_text = (text or "").lower()
    if any(keyword in lower_text for keyword in EMPLOYMENT_KEYWORDS):
        return ContractType.EMPLOYMENT.value
    return ContractType.OTHER.value
