from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OTPRequest(BaseModel):
    """Ask for a passcode to be sent to an allow-listed owner."""
    model_config = ConfigDict(populate_by_name=True)

    owner_id: int = Field(alias="ownerId", gt=0)


class OTPVerify(BaseModel):
    """Exchange a passcode for a session."""
    model_config = ConfigDict(populate_by_name=True)

    owner_id: int = Field(alias="ownerId", gt=0)
    code: str = Field(min_length=1, max_length=16)


class AuthResponse(BaseModel):
    success: bool
    message: Optional[str] = None
