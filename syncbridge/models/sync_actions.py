from pydantic import BaseModel, Field


class SendToDevResponse(BaseModel):
    success: bool
    task_id: str = Field(serialization_alias="taskId")
    message: str | None = None


class ChatSendRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class ChatSendResponse(BaseModel):
    success: bool
    session_id: str = Field(serialization_alias="sessionId")
    message_id: str | None = Field(default=None, serialization_alias="messageId")
