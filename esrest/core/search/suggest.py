"""Completion suggestions.

Case handling and exact-text fallback are decided by the analyzer configured
on the completion field, not here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from esrest.core.errors import InvalidQueryError
from esrest.core.search.query import _freeze_mapping

DEFAULT_SUGGESTION_NAME = "suggestion"


@dataclass(frozen=True)
class Completion:
    """Completion suggester options."""

    field: str
    size: int = 5
    contexts: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.size < 1:
            raise InvalidQueryError("size must be positive")
        _freeze_mapping(self, "contexts", self.contexts)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"field": self.field, "size": self.size}
        if self.contexts:
            body["contexts"] = {name: [value] for name, value in self.contexts.items()}
        return body


@dataclass(frozen=True)
class Suggest:
    """A completion request for ``text``."""

    text: str
    completion: Completion
    name: str = DEFAULT_SUGGESTION_NAME

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggest": {
                self.name: {
                    "prefix": self.text,
                    "completion": self.completion.to_dict(),
                }
            }
        }
