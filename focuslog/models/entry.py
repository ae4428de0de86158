"""
Pydantic models for focus log data.

Session is embedded in Entry and has no identity of its own. Every field is
always present so aggregation code never has to guess at missing keys.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from focuslog.utils.dates import is_iso_date

TIMER_TAG = 'Live-Focus'


class Session(BaseModel):
    """One logged activity block within a day."""
    model_config = ConfigDict(populate_by_name=True)

    category: str = Field(min_length=1, description="Track name or ad-hoc label, matched exactly")
    sub_category: str = Field(default='', alias='subCategory', description="Topic of the block")
    tags: List[str] = Field(default_factory=list, description="Informational labels")
    focused: float = Field(default=0.0, ge=0, description="Hours actually spent")
    assigned: float = Field(default=0.0, ge=0, description="Hours targeted")

    @field_validator('focused', 'assigned', mode='before')
    @classmethod
    def _blank_hours_are_zero(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0.0
        return value

    @field_validator('sub_category', mode='before')
    @classmethod
    def _null_topic(cls, value: Any) -> Any:
        return '' if value is None else value

    @field_validator('tags', mode='before')
    @classmethod
    def _unique_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (list, tuple, set)):
            seen = []
            for tag in value:
                if tag not in seen:
                    seen.append(tag)
            return seen
        return value

    def merge_key(self):
        return (self.category, self.sub_category)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Entry(BaseModel):
    """One calendar day's log for one owner."""

    id: Optional[str] = None
    owner: str
    date: str = Field(description="YYYY-MM-DD in the canonical time zone")
    sessions: List[Session] = Field(default_factory=list)
    notes: str = ''
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('date')
    @classmethod
    def _iso_date(cls, value: str) -> str:
        if not is_iso_date(value):
            raise ValueError('date must be YYYY-MM-DD')
        return value

    @field_validator('notes', mode='before')
    @classmethod
    def _null_notes(cls, value: Any) -> Any:
        return '' if value is None else value

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, mode='json')
        data['_id'] = self.id
        return data


class Track(BaseModel):
    """Owner-configured category template used to pre-fill forms and the timer."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    current_topic: str = Field(default='Not Set', alias='currentTopic')
    target_hours: float = Field(default=1.0, ge=0, alias='targetHours')


class TodoItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    is_completed: bool = Field(default=False, alias='isCompleted')


class EntryPayload(BaseModel):
    """Request body for POST /api/focus."""

    date: str
    sessions: List[Session] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator('date')
    @classmethod
    def _iso_date(cls, value: str) -> str:
        if not is_iso_date(value):
            raise ValueError('date must be YYYY-MM-DD')
        return value


class ReplacePayload(BaseModel):
    """Request body for PUT /api/focus/<id>."""

    sessions: List[Session] = Field(default_factory=list)
    notes: Optional[str] = ''


def merge_sessions(existing: List[Session], incoming: List[Session]) -> List[Session]:
    """
    Merge incoming sessions into a day's existing sessions.

    A session matching an existing (category, subCategory) pair adds its
    focused hours to that session; anything else is appended. The inputs are
    not modified.
    """
    merged = [s.model_copy(deep=True) for s in existing]
    for session in incoming:
        match = next((m for m in merged if m.merge_key() == session.merge_key()), None)
        if match is not None:
            match.focused += session.focused
        else:
            merged.append(session.model_copy(deep=True))
    return merged
