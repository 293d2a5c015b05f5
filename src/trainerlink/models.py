"""Canonical Pydantic models shared across all trainerlink modules.

This is the single source of truth for data shapes in the project. The models
fall into three groups:

**Session models** -- the client-side authentication state:
    :class:`TokenPair`, :class:`UserProfile`, and :class:`Session`.

**Wire models** -- request inputs and response bodies of the remote auth API:
    :class:`LoginResponse`, :class:`RegisterInput`, :class:`RegisterResponse`,
    :class:`ChangePasswordInput`, :class:`UpdateProfileInput`,
    :class:`UploadFile`, :class:`TrainerRegisterInput`,
    :class:`MessageResponse`, and :class:`ResetTokenResponse`.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ClientConfig`.

All models use Pydantic v2. Models mirroring remote payloads use
``extra="allow"`` so that fields the server adds later are preserved in
``model_extra`` instead of being dropped.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


DEFAULT_BASE_URL = "https://chanco-core.lolskins.gg"
DEFAULT_TIMEOUT = 30.0


# --- Session ---


class TokenPair(BaseModel):
    """Access/refresh token pair issued by the remote authority.

    Both values are opaque strings; the client never decodes them.
    """

    access: str
    refresh: str


class UserProfile(BaseModel):
    """Cached copy of the remote user profile.

    Treated as a cache of the server's record, not a source of truth. Only
    the identity field and the role discriminator are relied upon; all other
    fields are carried through untouched.
    """

    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    email: Optional[str] = None
    username: Optional[str] = None
    business_name: Optional[str] = None
    profile_image: Optional[str] = None
    role: Optional[Literal["client", "trainer"]] = None


class Session(BaseModel):
    """Immutable snapshot of the authentication state.

    ``authenticated`` is tri-state: ``None`` means the persisted state has
    not been read yet, ``False`` means logged out, ``True`` means logged in.
    Observers must treat ``None`` as "loading" and not redirect.

    Raises:
        ValueError: When ``authenticated`` is ``True`` without an access
            token.
    """

    model_config = ConfigDict(frozen=True)

    access_token: Optional[str] = None
    authenticated: Optional[bool] = None
    user: Optional[UserProfile] = None

    @model_validator(mode="after")
    def _authenticated_requires_token(self) -> Session:
        if self.authenticated is True and not self.access_token:
            raise ValueError("an authenticated session requires an access token")
        return self

    @classmethod
    def unknown(cls) -> Session:
        """The initial, not-yet-hydrated session."""
        return cls()

    @classmethod
    def logged_out(cls) -> Session:
        """A determined, logged-out session."""
        return cls(authenticated=False)


# --- Wire models ---


class LoginResponse(BaseModel):
    """Body returned by the password and Google login endpoints."""

    model_config = ConfigDict(extra="allow")

    tokens: TokenPair
    user: UserProfile


class RegisterInput(BaseModel):
    """Client account registration form."""

    email: str
    password: str
    confirm_password: str
    business_name: str = ""
    owner_name: str = ""
    address: str = ""
    pan_vat_no: str = ""
    contact_no: str = ""
    business_type: str = ""
    agree_company_policies: bool = False
    receive_news: bool = False


class RegisterResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    detail: str = ""
    status: bool = False


class ChangePasswordInput(BaseModel):
    """Password change authorised by a reset token from the forgot-password flow."""

    new_password: str
    confirm_new_password: str
    reset_token: str


class UpdateProfileInput(BaseModel):
    """Partial profile update. Fields left as ``None`` are not sent."""

    business_name: Optional[str] = None
    owner_name: Optional[str] = None
    address: Optional[str] = None
    pan_vat_no: Optional[str] = None
    contact_no: Optional[str] = None
    business_type: Optional[str] = None
    profile_image: Optional[str] = None


class UploadFile(BaseModel):
    """A local file attached to a multipart request."""

    path: str
    name: Optional[str] = None
    content_type: str = "application/octet-stream"


class TrainerRegisterInput(BaseModel):
    """Trainer registration form, sent as multipart form data."""

    email: str
    password: str
    confirm_password: str
    full_name: str = ""
    bio: str = ""
    contact_no: str = ""
    years_of_experience: int = 0
    pricing_per_session: float = 0
    session_type: str = ""
    expertise_categories: list[str] = Field(default_factory=list)
    certifications: list[UploadFile] = Field(default_factory=list)
    id_proof: Optional[UploadFile] = None
    profile_image: Optional[UploadFile] = None
    availability_preference: Optional[dict[str, Any]] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str = ""


class ResetTokenResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    reset_token: str


# --- Configuration ---


class ClientConfig(BaseModel):
    """Client configuration stored in ``config.json``.

    Example::

        ClientConfig(base_url="https://staging.example.com", timeout=10)
    """

    base_url: str = Field(default=DEFAULT_BASE_URL, description="Remote API base URL")
    timeout: float = Field(
        default=DEFAULT_TIMEOUT,
        gt=0,
        description="Fixed per-request timeout in seconds",
    )
    single_flight_refresh: bool = Field(
        default=True,
        description="Share one in-flight token renewal between concurrent 401s",
    )
    store_dir: Optional[str] = Field(
        default=None,
        description="Directory of the persistent key-value store "
        "(defaults to <data_dir>/store)",
    )
