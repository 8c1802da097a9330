"""Schemas exchanged with the companion authorization server."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AuthStartRequest(_CamelModel):
    """Body of ``POST /auth/start``."""

    client_id: Optional[str] = Field(None, alias="clientId")
    scopes: Optional[list[str]] = Field(
        None, description="Scopes to request; a space or comma separated string is accepted."
    )
    redirect_uri: Optional[str] = Field(None, alias="redirectUri")
    state: str = Field("default", description="Opaque value echoed back to the callback.")

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: Union[str, list[str], None]) -> Optional[list[str]]:
        if isinstance(value, str):
            return [scope for scope in value.replace(",", " ").split() if scope]
        return value


class AuthStartResponse(_CamelModel):
    status: str
    auth_url: str = Field(..., alias="authUrl")


class AuthStatusResponse(_CamelModel):
    authenticated: bool
    user_id: Optional[str] = Field(None, alias="userId")
    is_authenticating: bool = Field(False, alias="isAuthenticating")
    error: Optional[str] = None


__all__ = ["AuthStartRequest", "AuthStartResponse", "AuthStatusResponse"]
