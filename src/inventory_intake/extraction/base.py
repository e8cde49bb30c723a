from __future__ import annotations

from typing import List

from ..domain.models import ProductRecord


class Extractor:
    """Interface shared by the AI and pattern strategies.

    `extract` turns plain text into raw candidate records; the shared
    validation stage runs afterwards in the orchestrator. `action` labels
    the call for usage accounting.
    """

    name = ""

    @property
    def method(self) -> str:
        """Human-readable label reported in successful results."""
        return self.name

    def extract(self, text: str, *, action: str = "product_extraction") -> List[ProductRecord]:
        raise NotImplementedError
