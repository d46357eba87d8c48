"""Language-model term extraction and enhancement.

Both calls are single request/response exchanges with no retries. Replies are
expected to contain a JSON array; anything else degrades gracefully (no
candidates for extraction, the original records for enhancement).
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

import anthropic

from config import settings
from models import ExtractedTerm, is_kpi

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")

EXTRACT_SYSTEM_PROMPT = """You are an expert at identifying industry-specific terminology, acronyms, and jargon from business transcripts. Your task is to extract key terms that would be valuable to add to a professional glossary.

Focus on:
- Industry-specific terms (insurance, marketing, sales, finance)
- Acronyms and abbreviations
- Technical jargon
- KPIs and metrics
- Concepts that might be unfamiliar to new team members

Return your response as a JSON array of objects with these fields:
- term: string
- acronym: string (optional)
- definition: string (2-3 sentences)
- confidence: number (0-100), how certain you are this is a legitimate industry term
- sourceContext: string (optional, a brief excerpt from the transcript)

Only include terms that are used in professional contexts, worth defining for a glossary, and not common everyday words.
Aim for 5-20 terms depending on the transcript content. Quality over quantity."""

ENHANCE_PROMPT = """You are an expert at business terminology and KPIs. Analyze these terms and enhance them:

1. Decide whether each term is a KPI: a measurable metric that has a formula (conversion rate, cost per lead).
2. For KPIs: keep or add a commonly used acronym, include a calculation formula, and expand the definition.
3. For non-KPIs: set acronym to null unless it is a widely recognized abbreviation, and set calculation to null.
4. For all terms: rewrite the definition to be clear, professional and 2-3 sentences long.

Terms:

{terms}

Return ONLY a JSON array. Each object must have: id (unchanged), term, acronym (string or null), definition,
calculation (string or null), isKPI (boolean), tags (unchanged), relatedTerms (unchanged)."""


class LanguageModelUnavailable(RuntimeError):
    """Raised when no language model client can be built."""


def _build_client(api_key: Optional[str]) -> anthropic.Anthropic:
    key = api_key if api_key is not None else settings.anthropic_api_key
    if not key:
        raise LanguageModelUnavailable(
            "API key not configured. Please set ANTHROPIC_API_KEY environment variable."
        )
    return anthropic.Anthropic(api_key=key)


def _response_text(response: Any) -> str:
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", None) == "text":
            return block.text
    return ""


def parse_json_array(text: str) -> Optional[List[Dict[str, Any]]]:
    """Return the first JSON array of objects embedded in ``text``, or None."""
    match = _JSON_ARRAY.search(text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None
    return [item for item in parsed if isinstance(item, dict)]


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(item).strip() for item in value if str(item).strip()]


def _clamp_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(100.0, number))


class TermExtractor:
    """Pulls candidate glossary terms out of a transcript."""

    def __init__(self, client=None, model: Optional[str] = None, api_key: Optional[str] = None):
        self._client = client
        self._api_key = api_key
        self.model = model or settings.extract_model

    @property
    def client(self):
        if self._client is None:
            self._client = _build_client(self._api_key)
        return self._client

    def extract(self, transcript: str) -> List[ExtractedTerm]:
        if not transcript or not transcript.strip():
            raise ValueError("Transcript is required")

        truncated = transcript[: settings.transcript_max_chars]
        response = self.client.messages.create(
            model=self.model,
            max_tokens=settings.extract_max_tokens,
            system=EXTRACT_SYSTEM_PROMPT,
            messages=[
                {
                    "role": "user",
                    "content": (
                        "Please analyze this transcript and extract key industry terms, "
                        f"acronyms, and jargon:\n\n{truncated}"
                    ),
                }
            ],
        )

        parsed = parse_json_array(_response_text(response))
        if parsed is None:
            logger.warning("Extraction reply did not contain a JSON array")
            return []

        stamp = int(time.time() * 1000)
        terms: List[ExtractedTerm] = []
        for index, raw in enumerate(parsed):
            term = _clean(raw.get("term"))
            definition = _clean(raw.get("definition"))
            if not term or not definition:
                continue
            terms.append(
                ExtractedTerm(
                    id=f"term-{stamp}-{index}",
                    term=term,
                    definition=definition,
                    acronym=_clean(raw.get("acronym")),
                    confidence=_clamp_confidence(raw.get("confidence")),
                    source_context=_clean(raw.get("sourceContext")),
                    selected=True,
                )
            )
        logger.info("Extracted %d candidate terms", len(terms))
        return terms


def _enhance_payload(term: ExtractedTerm) -> Dict[str, Any]:
    return {
        "id": term.id,
        "term": term.term,
        "acronym": term.acronym,
        "definition": term.definition,
        "calculation": term.calculation,
        "tags": list(term.tags),
        "relatedTerms": list(term.related_terms),
    }


def _fallback(term: ExtractedTerm) -> ExtractedTerm:
    return replace(term, is_kpi=is_kpi(term))


def _merge_enhanced(original: ExtractedTerm, raw: Dict[str, Any]) -> ExtractedTerm:
    kpi = bool(raw.get("isKPI"))
    calculation = _clean(raw.get("calculation")) if kpi else None
    return ExtractedTerm(
        id=original.id,
        term=_clean(raw.get("term")) or original.term,
        definition=_clean(raw.get("definition")) or original.definition,
        acronym=_clean(raw.get("acronym")),
        confidence=original.confidence,
        source_context=original.source_context,
        selected=original.selected,
        calculation=calculation,
        tags=_string_list(raw.get("tags")) or list(original.tags),
        related_terms=_string_list(raw.get("relatedTerms")) or list(original.related_terms),
        is_kpi=kpi and calculation is not None,
        is_enhanced=True,
    )


class TermEnhancer:
    """Rewrites definitions and classifies KPIs in small batches."""

    def __init__(
        self,
        client=None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        api_key: Optional[str] = None,
    ):
        self._client = client
        self._api_key = api_key
        self.model = model or settings.enhance_model
        self.batch_size = max(1, batch_size or settings.enhance_batch_size)

    @property
    def client(self):
        if self._client is None:
            self._client = _build_client(self._api_key)
        return self._client

    def enhance(self, terms: Sequence[ExtractedTerm]) -> List[ExtractedTerm]:
        if not terms:
            raise ValueError("Terms array is required")

        enhanced: List[ExtractedTerm] = []
        for start in range(0, len(terms), self.batch_size):
            batch = list(terms[start : start + self.batch_size])
            enhanced.extend(self._enhance_batch(batch))
        return enhanced

    def _enhance_batch(self, batch: List[ExtractedTerm]) -> List[ExtractedTerm]:
        prompt = ENHANCE_PROMPT.format(
            terms=json.dumps([_enhance_payload(term) for term in batch], indent=2)
        )
        response = self.client.messages.create(
            model=self.model,
            max_tokens=settings.enhance_max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )

        parsed = parse_json_array(_response_text(response))
        if parsed is None:
            logger.warning("Enhancement reply unparseable; keeping %d original terms", len(batch))
            return [_fallback(term) for term in batch]

        by_id = {str(raw.get("id")): raw for raw in parsed}
        results: List[ExtractedTerm] = []
        for term in batch:
            raw = by_id.get(term.id)
            results.append(_merge_enhanced(term, raw) if raw else _fallback(term))
        return results
