"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Field names are camelCase on the wire; snake_case is accepted on input too.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupRequest(ApiModel):
    """
    Request model for signup.

    Required fields are checked by the domain so that a missing field
    yields the same 400 response as any other invalid signup. Extra profile
    fields are accepted and passed through; privileged ones are dropped.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    password: str | None = None
    email: str | None = None


class SigninRequest(ApiModel):
    """Request model for signin."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class EmailChangeRequest(ApiModel):
    """Request model for changing the email address."""

    email: EmailStr


class LinkProviderRequest(ApiModel):
    """Provider profile obtained by the OAuth callback."""

    profile: dict[str, Any]
    access_token: str | None = None


class ProviderTokenRequest(BaseModel):
    """Request model for refreshing a provider access token."""

    access_token: str | None = Field(default=None, alias="accessToken")
    user_id: str | None = Field(default=None, alias="userID")


class ProviderLinkResponse(ApiModel):
    """Linked provider as shown to its owner. Never includes the access token."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    provider: str
    profile: dict[str, Any]
    access_token_expires: datetime | None = None


class IdentityResponse(ApiModel):
    """Sanitized identity."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    username: str
    display_name: str
    display_username: str
    email: str | None = None
    email_temporary: str | None = None
    email_hash: str | None = None
    is_public: bool
    provider: str
    roles: list[str]
    profile: dict[str, Any]
    linked_providers: dict[str, ProviderLinkResponse]
    created: datetime | None = None
    updated: datetime | None = None


class ConfirmationResponse(ApiModel):
    """Response model for a redeemed confirmation token."""

    profile_made_public: bool
    user: IdentityResponse


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
