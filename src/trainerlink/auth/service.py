"""Remote auth API -- thin, typed wrappers around the auth endpoints.

:class:`AuthService` turns each endpoint of the remote auth API into one
coroutine: it normalises the inputs (emails trimmed and lower-cased, free
text trimmed), sends through the :class:`~trainerlink.client.RequestPipeline`,
and validates the response into a model from :mod:`trainerlink.models`.

The service holds no state. Session bookkeeping (persisting tokens, updating
the observable state) is the job of
:class:`~trainerlink.auth.manager.SessionManager`.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from trainerlink import endpoints
from trainerlink.auth.credential_store import normalize_email
from trainerlink.client.pipeline import RequestPipeline
from trainerlink.client.response import extract_response_data
from trainerlink.exceptions import InvalidCredentials, RemoteError
from trainerlink.models import (
    ChangePasswordInput,
    LoginResponse,
    MessageResponse,
    RegisterInput,
    RegisterResponse,
    ResetTokenResponse,
    TrainerRegisterInput,
    UpdateProfileInput,
    UploadFile,
    UserProfile,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _trim(value: Optional[str]) -> str:
    return (value or "").strip()


class AuthService:
    """Typed client of the remote auth endpoints.

    Args:
        pipeline: The request pipeline all calls go through.
    """

    def __init__(self, pipeline: RequestPipeline) -> None:
        self._pipeline = pipeline

    # ------------------------------------------------------------------ #
    # Sign-in and registration
    # ------------------------------------------------------------------ #

    async def login(self, email: str, password: str) -> LoginResponse:
        """Exchange email and password for a token pair and profile.

        Raises:
            InvalidCredentials: If the server rejects the credentials (4xx).
            NetworkFailure: On transport errors.
        """
        payload = {"email": normalize_email(email), "password": _trim(password)}
        response = await _rejecting_credentials(
            self._pipeline.post(endpoints.LOGIN, json_body=payload)
        )
        return _parse(LoginResponse, response)

    async def google_login(self, id_token: str) -> LoginResponse:
        """Exchange a Google ID token for a token pair and profile."""
        response = await _rejecting_credentials(
            self._pipeline.post(
                endpoints.GOOGLE_LOGIN, json_body={"id_token": id_token}
            )
        )
        return _parse(LoginResponse, response)

    async def check_email_exists(self, email: str) -> bool:
        response = await self._pipeline.post(
            endpoints.CHECK_EMAIL, json_body={"email": normalize_email(email)}
        )
        data = extract_response_data(response)
        return bool(isinstance(data, dict) and data.get("exists"))

    async def register(self, form: RegisterInput) -> RegisterResponse:
        """Create a client account.

        Raises:
            InvalidCredentials: If the server rejects the form (4xx); field
                errors are available on the exception.
        """
        payload = {
            "email": normalize_email(form.email),
            "password": _trim(form.password),
            "confirm_password": _trim(form.confirm_password),
            "business_name": _trim(form.business_name),
            "username": _trim(form.owner_name),
            "address": _trim(form.address),
            "pan_vat_no": _trim(form.pan_vat_no),
            "contact_no": _trim(form.contact_no),
            "business_type": _trim(form.business_type),
            "agree_company_policies": form.agree_company_policies,
            "receive_news": form.receive_news,
        }
        response = await _rejecting_credentials(
            self._pipeline.post(endpoints.REGISTER, json_body=payload)
        )
        return _parse(RegisterResponse, response)

    async def register_trainer(self, form: TrainerRegisterInput) -> dict[str, Any]:
        """Create a trainer account, uploading documents as multipart form data."""
        fields: dict[str, Any] = {
            "email": normalize_email(form.email),
            "password": _trim(form.password),
            "confirm_password": _trim(form.confirm_password),
            "full_name": _trim(form.full_name),
            "bio": _trim(form.bio),
            "contact_no": _trim(form.contact_no),
            "years_of_experience": str(form.years_of_experience),
            "pricing_per_session": str(form.pricing_per_session),
            "session_type": form.session_type,
            "role": "trainer",
        }
        if form.expertise_categories:
            fields["expertise_categories[]"] = list(form.expertise_categories)
        if form.availability_preference:
            fields["availability_preference"] = json.dumps(form.availability_preference)

        files: list[tuple[str, Any]] = []
        for index, cert in enumerate(form.certifications):
            files.append((f"certifications[{index}]", _file_part(cert)))
        if form.id_proof is not None:
            files.append(("id_proof", _file_part(form.id_proof)))
        if form.profile_image is not None:
            files.append(("profile_image", _file_part(form.profile_image)))

        response = await _rejecting_credentials(
            self._pipeline.post(
                endpoints.TRAINER_REGISTER, data=fields, files=files
            )
        )
        data = extract_response_data(response)
        return data if isinstance(data, dict) else {}

    async def logout(self) -> None:
        """Invalidate the current session on the server."""
        await self._pipeline.get(endpoints.LOGOUT)

    # ------------------------------------------------------------------ #
    # Verification and password reset
    # ------------------------------------------------------------------ #

    async def forgot_password(self, email: str) -> MessageResponse:
        response = await self._pipeline.post(
            endpoints.FORGOT_PASSWORD, json_body={"email": normalize_email(email)}
        )
        return _parse(MessageResponse, response)

    async def verify_email(self, email: str, code: str) -> MessageResponse:
        response = await self._pipeline.post(
            endpoints.VERIFY_EMAIL,
            json_body={"email": normalize_email(email), "verification_code": _trim(code)},
        )
        return _parse(MessageResponse, response)

    async def verify_forgot_password(self, email: str, code: str) -> ResetTokenResponse:
        response = await self._pipeline.post(
            endpoints.VERIFY_FORGOT_PASSWORD,
            json_body={"email": normalize_email(email), "verification_code": _trim(code)},
        )
        return _parse(ResetTokenResponse, response)

    async def resend_otp(self, email: str) -> MessageResponse:
        response = await self._pipeline.post(
            endpoints.RESEND_OTP, json_body={"email": normalize_email(email)}
        )
        return _parse(MessageResponse, response)

    async def change_password(self, form: ChangePasswordInput) -> MessageResponse:
        response = await self._pipeline.post(
            endpoints.CHANGE_PASSWORD,
            json_body={
                "new_password": _trim(form.new_password),
                "confirm_new_password": _trim(form.confirm_new_password),
                "reset_token": _trim(form.reset_token),
            },
        )
        return _parse(MessageResponse, response)

    # ------------------------------------------------------------------ #
    # Profile
    # ------------------------------------------------------------------ #

    async def get_profile(self) -> UserProfile:
        """Fetch the signed-in user's profile.

        The server wraps the profile as ``{"user": ...}`` or ``{"data": ...}``
        depending on the deployment; both and the bare object are accepted.
        """
        response = await self._pipeline.get(endpoints.WHOAMI)
        data = extract_response_data(response)
        if isinstance(data, dict):
            data = data.get("user") or data.get("data") or data
        return _validate(UserProfile, data, response)

    async def update_profile(self, patch: UpdateProfileInput) -> UserProfile:
        """Send a partial profile update. Unset fields are omitted."""
        payload = {
            "business_name": patch.business_name,
            "username": patch.owner_name,
            "address": patch.address,
            "pan_vat_no": patch.pan_vat_no,
            "contact_no": patch.contact_no,
            "business_type": patch.business_type,
        }
        body: dict[str, Any] = {k: v.strip() for k, v in payload.items() if v is not None}
        if patch.profile_image is not None:
            body["profile_image"] = patch.profile_image
        response = await self._pipeline.put(endpoints.UPDATE_PROFILE, json_body=body)
        return _parse(UserProfile, response)


# ---------------------------------------------------------------------- #
# Module-level helpers
# ---------------------------------------------------------------------- #


async def _rejecting_credentials(call: Awaitable[httpx.Response]) -> httpx.Response:
    """Await *call*, re-typing a 4xx :class:`RemoteError` as :class:`InvalidCredentials`."""
    try:
        return await call
    except RemoteError as exc:
        if 400 <= exc.status_code < 500:
            raise InvalidCredentials.from_remote(exc) from exc
        raise


def _file_part(upload: UploadFile) -> tuple[str, bytes, str]:
    path = Path(upload.path)
    return (upload.name or path.name, path.read_bytes(), upload.content_type)


def _parse(model: type[ModelT], response: httpx.Response) -> ModelT:
    return _validate(model, extract_response_data(response), response)


def _validate(model: type[ModelT], data: Any, response: httpx.Response) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RemoteError(
            f"Malformed {model.__name__} response: {exc.error_count()} validation error(s)",
            status_code=response.status_code,
            reason=response.reason_phrase or "",
            payload=data,
        ) from exc
