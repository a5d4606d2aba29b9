"""Proposal input model.

A proposal is the structured document under evaluation: title, description and a
list of payload items (links, attachments, inline text). Inline payload text is
turned into pseudo-documents so it can be shown to the classifier alongside
retrieved evidence.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from proposal_factcheck.retrieval.schemas import PAYLOAD_KIND, EvidenceDocument

PAYLOAD_SNIPPET_CHARS = 800


class PayloadItem(BaseModel):
    type: str = "unknown"
    uri: Optional[str] = None
    data: Any = None
    metadata: Optional[dict[str, Any]] = None

    def inline_text(self) -> Optional[str]:
        """Inline text carried by the item, if any."""
        if isinstance(self.data, str):
            text = self.data
        elif isinstance(self.data, dict) and isinstance(self.data.get("text"), str):
            text = self.data["text"]
        else:
            return None
        return text if text.strip() else None


class Proposal(BaseModel):
    """Governance proposal under evaluation."""

    id: str
    title: str = ""
    description: str = ""
    payload: list[PayloadItem] = Field(default_factory=list)

    def payload_documents(self) -> list[EvidenceDocument]:
        """Inline payload text as evidence documents (source_kind "payload")."""
        documents = []
        for number, item in enumerate(self.payload, start=1):
            text = item.inline_text()
            if text is None:
                continue
            documents.append(
                EvidenceDocument(
                    id=f"payload-{number}",
                    title=f"[payload:{item.type}] {item.uri or ''}".strip(),
                    uri=item.uri,
                    snippet=text[:PAYLOAD_SNIPPET_CHARS],
                    source_kind=PAYLOAD_KIND,
                    relevance_score=1.0,
                )
            )
        return documents

    def digest(self, max_chars: int = 6000) -> str:
        """Plain-text rendering of the proposal for prompts."""
        lines = [f"Title: {self.title or '(untitled)'}", f"Description: {self.description or '(none)'}"]
        for number, item in enumerate(self.payload[:10], start=1):
            detail = item.inline_text() or (str(item.metadata) if item.metadata else "")
            lines.append(f"P{number} [{item.type}] {item.uri or ''} :: {detail[:300]}")
        return "\n".join(lines)[:max_chars]
