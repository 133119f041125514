from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChannelAccount(BaseModel):
    id: str
    name: Optional[str] = None


class TurnRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "message"
    text: str = ""
    conversation_id: str = Field(alias="conversation_id", min_length=1)
    user_id: str = Field(alias="user_id", min_length=1)
    recipient_id: Optional[str] = Field(default=None, alias="recipient_id")
    members_added: List[ChannelAccount] = Field(default_factory=list, alias="members_added")
    trace_id: Optional[str] = Field(default=None, alias="trace_id")
    request_id: Optional[str] = Field(default=None, alias="request_id")


class DialogResetRequest(BaseModel):
    conversation_id: str = Field(alias="conversation_id", min_length=1)
