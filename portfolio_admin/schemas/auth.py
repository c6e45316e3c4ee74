from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CamelModel(BaseModel):
    # wire names are the admin panel's camelCase keys; python code uses snake_case
    model_config = ConfigDict(populate_by_name=True)


class UserOut(BaseModel):
    id: str
    email: EmailStr
    first_name: str
    last_name: str
    is_active: bool
    two_factor_enabled: bool
    created_at_utc: datetime

    model_config = {"from_attributes": True}


class MeResponse(BaseModel):
    user: UserOut


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1, max_length=100, alias="firstName")
    last_name: str = Field(..., min_length=1, max_length=100, alias="lastName")


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class TwoFactorChallengeResponse(CamelModel):
    requires_2fa: bool = Field(True, alias="requires2FA")
    temp_token: str = Field(..., alias="tempToken")
    message: str = "Two-factor authentication required"


class VerifyTwoFactorRequest(CamelModel):
    code: str = Field(..., min_length=1)
    temp_token: str = Field(..., min_length=1, alias="tempToken")
    use_backup_code: bool = Field(False, alias="useBackupCode")


class VerifyTwoFactorResponse(CamelModel):
    success: bool = True
    token: str
    message: str = "2FA verification successful"
    remaining_backup_codes: int | None = Field(None, alias="remainingBackupCodes")


class SetupTwoFactorResponse(CamelModel):
    qr_code: str = Field(..., alias="qrCode")
    secret: str
    backup_codes: list[str] = Field(..., alias="backupCodes")
    message: str = "Scan the QR code with your authenticator app and verify with a code to enable 2FA"


class EnableTwoFactorRequest(BaseModel):
    token: str = Field(..., min_length=1, description="6-digit TOTP code")


class MessageResponse(BaseModel):
    success: bool = True
    message: str
