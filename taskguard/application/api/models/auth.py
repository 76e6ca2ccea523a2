"""
Auth API Models

Request and response bodies for the refresh-token endpoints. Field names
are camelCase on the wire.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1, description="Refresh credential from the last exchange")


class LogoutRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., ge=0, description="Access token lifetime in seconds")


class LogoutResponse(CamelModel):
    revoked: int = Field(..., ge=0, description="Refresh records deleted")
