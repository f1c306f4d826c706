from pydantic import BaseModel, Field


MAX_INBOUND_BODY_CHARS = 6000


class InboundWebhookMessage(BaseModel):
    sender: str = Field(min_length=1, max_length=256)
    body: str = Field(default="", max_length=MAX_INBOUND_BODY_CHARS)
    message_sid: str | None = Field(default=None, max_length=64)


class HealthResponse(BaseModel):
    status: str = "ok"
