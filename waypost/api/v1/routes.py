"""
API v1 routes.

Defines REST endpoints for signup, signin, email confirmation and OAuth
provider management. Domain errors are translated by ``waypost.api.errors``.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from waypost.api.dependencies import get_credential_service, get_current_identity
from waypost.api.models import (
    ConfirmationResponse,
    EmailChangeRequest,
    ErrorResponse,
    IdentityResponse,
    LinkProviderRequest,
    MessageResponse,
    ProviderTokenRequest,
    SigninRequest,
    SignupRequest,
)
from waypost.api.session import CookieSession
from waypost.config.settings import Settings, get_settings
from waypost.domain.credentials import CredentialService
from waypost.domain.identity import EmailTokenValidity, Identity, NewIdentityRequest, ProviderName

router = APIRouter(tags=["v1"])


@router.post(
    "/auth/signup",
    response_model=IdentityResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing required fields"},
        409: {"model": ErrorResponse, "description": "Username or email already taken"},
        502: {"model": ErrorResponse, "description": "Confirmation email could not be sent"},
    },
    summary="Sign up with a local account",
)
async def signup(
    request_data: SignupRequest,
    service: CredentialService = Depends(get_credential_service),
) -> IdentityResponse:
    """
    Create an unconfirmed account and email a confirmation link.

    The profile stays hidden until the email is confirmed.
    """
    new_identity = NewIdentityRequest(
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        username=request_data.username,
        password=request_data.password,
        email=request_data.email,
        extra=dict(request_data.model_extra or {}),
    )
    identity = service.signup(new_identity)
    return IdentityResponse.model_validate(identity)


@router.post(
    "/auth/signin",
    response_model=IdentityResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid username or password"}},
    summary="Sign in with username and password",
)
async def signin(
    request_data: SigninRequest,
    service: CredentialService = Depends(get_credential_service),
) -> IdentityResponse:
    identity = service.signin(request_data.username, request_data.password)
    return IdentityResponse.model_validate(identity)


@router.get("/auth/signout", summary="Sign out")
async def signout(settings: Settings = Depends(get_settings)) -> RedirectResponse:
    redirect = RedirectResponse("/", status_code=status.HTTP_302_FOUND)
    CookieSession(redirect, settings).logout()
    return redirect


@router.get(
    "/auth/confirm-email/{token}",
    status_code=status.HTTP_302_FOUND,
    summary="Check a confirmation link",
    description="Redirects to the confirmation page when the token is usable, "
    "to the invalid-link page otherwise. Does not consume the token.",
)
async def validate_email_token(
    token: str,
    service: CredentialService = Depends(get_credential_service),
) -> RedirectResponse:
    if service.validate_email_token(token) is EmailTokenValidity.VALID:
        return RedirectResponse(f"/confirm-email/{token}", status_code=status.HTTP_302_FOUND)
    return RedirectResponse("/confirm-email-invalid", status_code=status.HTTP_302_FOUND)


@router.post(
    "/auth/confirm-email/{token}",
    response_model=ConfirmationResponse,
    responses={400: {"model": ErrorResponse, "description": "Token invalid or expired"}},
    summary="Confirm email with token",
)
async def confirm_email(
    token: str,
    service: CredentialService = Depends(get_credential_service),
) -> ConfirmationResponse:
    result = service.confirm_email(token)
    return ConfirmationResponse(
        profile_made_public=result.profile_made_public,
        user=IdentityResponse.model_validate(result.identity),
    )


@router.post(
    "/auth/resend-confirmation",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Already confirmed"},
        403: {"model": ErrorResponse, "description": "Not signed in"},
    },
    summary="Resend the confirmation email",
)
async def resend_confirmation(
    identity: Identity | None = Depends(get_current_identity),
    service: CredentialService = Depends(get_credential_service),
) -> MessageResponse:
    service.resend_confirmation(identity)
    return MessageResponse(message="Sent confirmation email.")


@router.put(
    "/users/email",
    response_model=IdentityResponse,
    responses={403: {"model": ErrorResponse, "description": "Not signed in"}},
    summary="Change email address",
    description="The new address becomes active once its confirmation link is used.",
)
async def change_email(
    request_data: EmailChangeRequest,
    identity: Identity | None = Depends(get_current_identity),
    service: CredentialService = Depends(get_credential_service),
) -> IdentityResponse:
    updated = service.request_email_change(identity, request_data.email)
    return IdentityResponse.model_validate(updated)


@router.post(
    "/users/accounts/{provider}",
    response_model=IdentityResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        409: {"model": ErrorResponse, "description": "Already connected"},
    },
    summary="Connect an OAuth provider",
)
async def link_provider(
    provider: str,
    request_data: LinkProviderRequest,
    identity: Identity | None = Depends(get_current_identity),
    service: CredentialService = Depends(get_credential_service),
) -> IdentityResponse:
    updated = service.link_provider(
        identity, provider, request_data.profile, access_token=request_data.access_token
    )
    return IdentityResponse.model_validate(updated)


@router.delete(
    "/users/accounts/{provider}",
    response_model=IdentityResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unknown provider"},
        403: {"model": ErrorResponse, "description": "Not signed in"},
    },
    summary="Disconnect an OAuth provider",
)
async def unlink_provider(
    provider: str,
    identity: Identity | None = Depends(get_current_identity),
    service: CredentialService = Depends(get_credential_service),
) -> IdentityResponse:
    updated = service.unlink_provider(identity, provider)
    return IdentityResponse.model_validate(updated)


@router.post(
    "/auth/facebook/token",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing accessToken or userID"},
        401: {"model": ErrorResponse, "description": "Not signed in"},
        403: {"model": ErrorResponse, "description": "Facebook account not connected"},
        502: {"model": ErrorResponse, "description": "Facebook refused the exchange"},
    },
    summary="Extend the Facebook access token",
)
async def update_facebook_token(
    request_data: ProviderTokenRequest,
    identity: Identity | None = Depends(get_current_identity),
    service: CredentialService = Depends(get_credential_service),
) -> MessageResponse:
    service.refresh_provider_token(
        identity,
        request_data.access_token,
        request_data.user_id,
        provider=ProviderName.FACEBOOK,
    )
    return MessageResponse(message="Token updated.")
