"""
Signature extraction from rate limit errors.

Turns an error document (or a provider SDK exception) into at most one
``ErrorSignature``: a provider guess plus the textual and numeric markers
that identify the error. Every method returns an empty result instead of
raising for values that are not error-like.
"""

from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from ..models.patterns import ErrorSignature
from .normalize import to_error_document


RATE_LIMIT_PHRASES = [
    'rate limit',
    'rate_limit',
    'ratelimit',
    'too many requests',
    'too_many_requests',
    'quota exceeded',
    'quota_exceeded',
    'insufficient_quota',
    'resource exhausted',
    'resource_exhausted',
    'daily limit exceeded',
    'monthly limit exceeded',
    'maximum requests',
    'requests per minute',
    'requests per second',
    'request limit',
    'request_limit',
    'limit exceeded',
    'limit_exceeded',
]

# (substring, canonical provider id); first match wins
KNOWN_PROVIDERS = [
    ('anthropic', 'anthropic'),
    ('claude', 'anthropic'),
    ('gemini', 'google'),
    ('google', 'google'),
    ('openai', 'openai'),
    ('azure', 'azure'),
    ('cohere', 'cohere'),
    ('mistral', 'mistral'),
    ('huggingface', 'huggingface'),
]


class SignatureExtractor:
    """Extracts error signatures from loosely structured errors."""

    def extract(self, error: Any) -> List[ErrorSignature]:
        """
        Extract the signature of an error.

        Args:
            error: Error document, SDK exception, or any other value

        Returns:
            A list with exactly one signature, or an empty list when nothing matched
        """
        doc = to_error_document(error)
        if doc is None:
            return []

        data = self._data(doc)
        patterns: List[str] = []

        status_code = self.extract_status_code(doc)
        if status_code is not None:
            patterns.append(str(status_code))

        patterns.extend(self.extract_phrases(doc))

        error_code = self.extract_error_code(doc)
        if error_code:
            patterns.append(error_code)

        # Deduplicate while keeping first-seen order
        patterns = list(dict.fromkeys(p for p in patterns if p))
        provider = self.extract_provider(doc)

        if not patterns and provider is None:
            return []

        source_parts = [
            self._text(data.get('responseBody')),
            self._text(data.get('message')) or self._text(doc.get('message')),
            self._text(doc.get('name')),
            str(status_code) if status_code is not None else '',
            error_code or '',
        ]

        return [ErrorSignature(
            provider=provider,
            patterns=patterns,
            source_error=' '.join(part for part in source_parts if part),
        )]

    def extract_provider(self, error: Any) -> Optional[str]:
        """Return the canonical lower-case provider id mentioned in the error."""
        doc = to_error_document(error)
        if doc is None:
            return None

        all_text = self._searchable_text(doc)
        for needle, provider in KNOWN_PROVIDERS:
            if needle in all_text:
                return provider
        return None

    def extract_status_code(self, error: Any) -> Optional[int]:
        """Return the nested ``data.statusCode`` when it is an integer."""
        doc = to_error_document(error)
        if doc is None:
            return None

        status_code = self._data(doc).get('statusCode')
        if isinstance(status_code, int) and not isinstance(status_code, bool):
            return status_code
        return None

    def extract_phrases(self, error: Any) -> List[str]:
        """Return every known rate limit phrase found in the error text."""
        doc = to_error_document(error)
        if doc is None:
            return []

        all_text = self._searchable_text(doc)
        return [phrase for phrase in RATE_LIMIT_PHRASES if phrase in all_text]

    def extract_error_code(self, error: Any) -> Optional[str]:
        """Return the machine-readable error code (``data.code`` or ``data.type``)."""
        doc = to_error_document(error)
        if doc is None:
            return None

        data = self._data(doc)
        for field in ('code', 'type'):
            value = data.get(field)
            if isinstance(value, (str, int)) and not isinstance(value, bool):
                value = str(value)
                if value:
                    return value
        return None

    def _searchable_text(self, doc: Dict[str, Any]) -> str:
        data = self._data(doc)
        return ' '.join([
            self._text(doc.get('name')),
            self._text(doc.get('message')),
            self._text(data.get('message')),
            self._text(data.get('responseBody')),
        ]).lower()

    @staticmethod
    def _data(doc: Dict[str, Any]) -> Dict[str, Any]:
        data = doc.get('data')
        return dict(data) if isinstance(data, Mapping) else {}

    @staticmethod
    def _text(value: Any) -> str:
        if value is None:
            return ''
        try:
            return str(value)
        except Exception:
            return ''
