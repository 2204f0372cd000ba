from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from cardsync.domain.cards.models import Card, CardKind, ParseAnomaly
from cardsync.domain.revision.differ import DiffEntry, DiffKind, Side


class CardModel(BaseModel):
    """A single flashcard"""

    kind: CardKind = Field(CardKind.BASIC, description="Basic or Cloze")
    question: str = Field(..., description="Question, or cloze text containing ____")
    answer: str = Field("", description="Answer, or the text filling the blank")
    remote_id: Optional[int] = Field(None, description="Note ID in the remote store")
    is_typed_recall: bool = Field(False, description="Use the typed-answer note type")

    def to_card(self) -> Card:
        return Card(
            kind=self.kind,
            question=self.question,
            answer=self.answer,
            remote_id=self.remote_id,
            is_typed_recall=self.is_typed_recall,
        )

    @classmethod
    def from_card(cls, card: Card) -> "CardModel":
        return cls(
            kind=card.kind,
            question=card.question,
            answer=card.answer,
            remote_id=card.remote_id,
            is_typed_recall=card.is_typed_recall,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "kind": "Basic",
                "question": "What is 2+2?",
                "answer": "4",
                "remote_id": None,
            }
        }


class AnomalyModel(BaseModel):
    line_number: int
    reason: str
    text: str = ""

    @classmethod
    def from_anomaly(cls, anomaly: ParseAnomaly) -> "AnomalyModel":
        return cls(line_number=anomaly.line_number, reason=anomaly.reason, text=anomaly.text)


class BlockTextRequest(BaseModel):
    """Inner text of an anki-cards block, without the fence"""

    text: str = Field(..., description="Block content")


class ParseResponse(BaseModel):
    target_deck: Optional[str]
    subdeck: str = ""
    instruction: Optional[str] = None
    status: Optional[str] = None
    cards: List[CardModel]
    anomalies: List[AnomalyModel] = []


class SerializeRequest(BaseModel):
    deck: str = Field(..., description="Target deck path, e.g. Math::Algebra")
    cards: List[CardModel] = Field(default_factory=list)
    instruction: Optional[str] = None
    status: Optional[str] = None

    @field_validator("deck")
    def validate_deck(cls, value):
        if not value or not value.strip():
            raise ValueError("Deck cannot be empty")
        return value.strip()


class SerializeResponse(BaseModel):
    text: str
    fenced: str


class LocateRequest(BaseModel):
    document: str = Field(..., description="Full document text")
    previous_source: str = Field("", description="Block content as it was last read")
    position_hint: Optional[int] = Field(None, ge=0, description="Offset preferred among equal matches")


class LocateResponse(BaseModel):
    start: int
    end: int
    tier: str
    inner: str


class PromptContextRequest(BaseModel):
    cards: List[CardModel] = Field(default_factory=list)


class PromptContextResponse(BaseModel):
    context: str


class CleanGeneratedRequest(BaseModel):
    raw: str = Field(..., description="Generated text")
    block_text: Optional[str] = Field(None, description="Block content the cards are appended to")


class CleanGeneratedResponse(BaseModel):
    cleaned: str
    block_text: Optional[str] = None


class DiffRequest(BaseModel):
    old_cards: List[CardModel] = Field(default_factory=list)
    new_cards: List[CardModel] = Field(default_factory=list)


class DiffEntryModel(BaseModel):
    index: int
    kind: DiffKind
    old: Optional[CardModel] = None
    new: Optional[CardModel] = None
    resolution: Side = Side.NEW

    @classmethod
    def from_entry(cls, index: int, entry: DiffEntry) -> "DiffEntryModel":
        return cls(
            index=index,
            kind=entry.kind,
            old=CardModel.from_card(entry.old) if entry.old else None,
            new=CardModel.from_card(entry.new) if entry.new else None,
            resolution=entry.resolution,
        )


class DiffResponse(BaseModel):
    entries: List[DiffEntryModel]


class MergeRequest(DiffRequest):
    resolutions: Dict[int, Side] = Field(default_factory=dict, description="Entry index to chosen side")


class MergeResponse(BaseModel):
    cards: List[CardModel]
    removed_remote_ids: List[int] = []


class SyncCardsRequest(BaseModel):
    deck: str = Field(..., description="Target deck path")
    cards: List[CardModel] = Field(default_factory=list)
    source_path: Optional[str] = Field(None, description="Vault path of the note holding the cards")

    @field_validator("deck")
    def validate_deck(cls, value):
        if not value or not value.strip():
            raise ValueError("Deck cannot be empty")
        return value.strip()


class SyncCardsResponse(BaseModel):
    deck: str
    cards: List[CardModel]
    created: int
    updated: int
    skipped: int


class SyncFileRequest(BaseModel):
    path: str = Field(..., description="Document path relative to the vault")
    previous_source: str = Field("", description="Block content as it was last read; empty selects the last block")
    position_hint: Optional[int] = Field(None, ge=0, description="Offset preferred among equally matching blocks")


class SyncFileResponse(SyncCardsResponse):
    document: str
    tier: Optional[str] = None
    anomalies: List[AnomalyModel] = []


class DeckCountResponse(BaseModel):
    deck: str
    count: int
