"""Wire models for the remote tabular store API."""

from typing import List, Optional, Any, Dict
from pydantic import BaseModel, Field, field_validator


class RecordPayload(BaseModel):
    """A record as returned by the remote API."""
    id: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    createdTime: Optional[str] = None

    @field_validator('fields', mode='before')
    @classmethod
    def validate_fields(cls, v):
        # The API omits "fields" entirely for rows where every cell is empty
        if v is None:
            return {}
        return v


class RecordListResponse(BaseModel):
    """Response from a batch create, batch update or list call."""
    records: List[RecordPayload] = Field(default_factory=list)
    offset: Optional[str] = None


class ErrorBody(BaseModel):
    """Error payload, e.g. {"error": {"type": "RATE_LIMIT_REACHED", "message": "..."}}."""
    type: Optional[str] = None
    message: Optional[str] = None


class ListFilter(BaseModel):
    """Query parameters for list requests."""
    filterByFormula: Optional[str] = None
    pageSize: Optional[int] = Field(None, ge=1, le=100)
    maxRecords: Optional[int] = Field(None, ge=1)
    offset: Optional[str] = None
    sort_field: Optional[str] = None
    sort_direction: Optional[str] = Field(None, pattern="^(asc|desc)$")

    def to_params(self) -> Dict[str, Any]:
        """Flatten into the bracketed query-string form the API expects."""
        params = self.model_dump(exclude_none=True, exclude={"sort_field", "sort_direction"})
        if self.sort_field:
            params["sort[0][field]"] = self.sort_field
            params["sort[0][direction]"] = self.sort_direction or "asc"
        return params
