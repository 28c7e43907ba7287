from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class WebRequestFeed(BaseModel):
    id: str
    share_token: str
    title: str = ""
    context: str | None = None
    created_at: datetime
    status: str | None = None
    user_id: str | None = None
    area_id: str | None = None
    location_name: str | None = None
    location_user_generated: bool | None = None
    category_id: str | None = None
    business_type_name: str | None = None
    subcategory_id: str | None = None
    subcategory_name: str | None = None
    response_count: int = 0
    requester_name: str = ""


class WebRequestResponse(BaseModel):
    id: str
    request_id: str
    created_at: datetime
    is_guest: bool = True
    responder_name: str | None = None
    business_name: str
    website: str | None = None
    email: str | None = None
    instagram: str | None = None
    location: str | None = None
    notes: str | None = None
    user_id: str | None = None
    voucher_name: str | None = None
    is_business_linked: bool = False


class RequestDetail(BaseModel):
    request: WebRequestFeed
    responses: list[WebRequestResponse] = Field(default_factory=list)


class RequestFilters(BaseModel):
    location: str | None = Field(default=None, description="Area id; expanded to all descendants")
    business_type: str | None = Field(default=None, description="Category or subcategory id")
    search: str | None = Field(default=None, description="Substring of title or context")


class RecRequest(BaseModel):
    id: str
    share_token: str
    title: str = ""
    context: str | None = None
    category_id: str | None = None
    subcategory_id: str | None = None
    area_id: str | None = None
    neighbourhood_id: str | None = None
    city_id: str | None = None
    is_public: bool = True
    status: str | None = None
    created_at: datetime | None = None


class RecResponse(BaseModel):
    id: str | None = None
    request_id: str
    business_name: str | None = None
    responder_name: str | None = None
    email: str | None = None
    instagram: str | None = None
    website: str | None = None
    location: str | None = None
    notes: str | None = None
    is_guest: bool = True
    created_at: datetime | None = None


class CreateRequestBody(BaseModel):
    """What the create form submits: picked ids, or free text to get-or-create."""

    context: str | None = Field(default=None, max_length=2000)
    category_option_id: str | None = None
    business_type: str | None = Field(default=None, max_length=100)
    location_id: str | None = None
    location: str | None = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def _require_category_and_location(self) -> "CreateRequestBody":
        if not self.category_option_id and not (self.business_type or "").strip():
            raise ValueError("A business type is required")
        if not self.location_id and not (self.location or "").strip():
            raise ValueError("A location is required")
        return self


class CreateResponseBody(BaseModel):
    responder_name: str | None = Field(default=None, max_length=100)
    business_name: str = Field(..., min_length=1, max_length=200)
    email: str | None = None
    instagram: str | None = None
    website: str | None = None
    location: str | None = None
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _business_name_not_blank(self) -> "CreateResponseBody":
        if not self.business_name.strip():
            raise ValueError("Business name is required")
        return self


class FeedItemOut(WebRequestFeed):
    posted: str


class RequestDetailOut(BaseModel):
    request: FeedItemOut
    responses: list[WebRequestResponse]
    share_url: str
    whatsapp_url: str
    is_mine: bool = False
