"""
Error signature and pattern models.

``ErrorSignature`` is the ephemeral output of the signature extractor,
``ErrorPattern`` is a static configuration-supplied detection pattern and
``LearnedPattern`` is the durable record persisted under
``errorPatterns.learnedPatterns`` in the shared JSON document.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


@dataclass
class ErrorSignature:
    """Textual and numeric markers extracted from one error instance."""
    patterns: List[str]
    source_error: str = ""
    provider: Optional[str] = None
    extracted_at: float = field(default_factory=lambda: time.time() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display and serialization."""
        return {
            "provider": self.provider,
            "patterns": list(self.patterns),
            "sourceError": self.source_error,
            "extractedAt": self.extracted_at,
        }


class ErrorPattern(BaseModel):
    """Static rate limit detection pattern."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    provider: Optional[str] = None
    patterns: List[Union[str, Pattern[str]]] = Field(default_factory=list)
    priority: int = Field(default=50, ge=0, le=100)

    def pattern_texts(self) -> List[str]:
        """Pattern strings with regular expressions rendered as their source."""
        return [p.pattern if isinstance(p, re.Pattern) else p for p in self.patterns]


class LearnedPattern(BaseModel):
    """A persisted, confidence-scored pattern promoted from repeated observation.

    Validation is strict so that malformed entries in the pattern document are
    rejected instead of coerced.
    """
    model_config = ConfigDict(
        strict=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    name: str
    provider: Optional[str] = None
    patterns: List[str] = Field(..., min_length=1)
    priority: int
    confidence: float = Field(..., ge=0.0, le=1.0)
    learned_at: str
    sample_count: int = Field(..., ge=1)
    last_used: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """Render in the camelCase shape stored in the pattern document."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_error_pattern(self) -> ErrorPattern:
        return ErrorPattern(
            name=self.name,
            provider=self.provider,
            patterns=list(self.patterns),
            priority=max(0, min(100, int(self.priority))),
        )
