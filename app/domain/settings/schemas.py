"""Platform settings schemas - every recognized option and its effect

Each section has a full model (stored and returned) and an update model
(partial, all fields optional). Both reject unknown keys.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SecuritySettings(BaseModel):
    """Account security policy enforced by the identity service"""

    model_config = ConfigDict(extra="forbid")

    twoFactorAuth: bool = Field(True, description="Require a second factor at sign-in")
    passwordMinLength: int = Field(8, ge=8, le=128, description="Minimum password length")
    passwordExpiration: int = Field(
        90, ge=0, le=365, description="Days before a password must be changed, 0 disables"
    )
    sessionTimeout: int = Field(30, ge=5, le=1440, description="Idle minutes before sign-out")
    maxLoginAttempts: int = Field(5, ge=3, le=20, description="Failed sign-ins before lockout")
    lockoutDuration: int = Field(15, ge=5, le=1440, description="Lockout length in minutes")


class SystemSettings(BaseModel):
    """Platform identity and availability"""

    model_config = ConfigDict(extra="forbid")

    platformName: str = Field(
        "Therapy Practice",
        min_length=1,
        max_length=100,
        description="Product name used in email subjects and headers",
    )
    supportEmail: str = Field(
        "support@therapypractice.app",
        min_length=3,
        max_length=255,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="Address shown to users as the support contact",
    )
    maintenanceMode: bool = Field(False, description="Show the maintenance banner to users")
    allowNewRegistrations: bool = Field(True, description="Accept new clinic and therapist sign-ups")


class NotificationSettings(BaseModel):
    """Outbound email switches consulted by the notification dispatcher"""

    model_config = ConfigDict(extra="forbid")

    emailNotifications: bool = Field(True, description="Master switch for all outbound email")
    notifyOnSupportTicket: bool = Field(
        True, description="Email owners when a ticket is created, replied to or resolved"
    )
    notifyOnFailedPayment: bool = Field(
        True, description="Email subscribers when a subscription payment fails"
    )
    notifyOnNewRegistration: bool = Field(
        True,
        description="Email the support inbox when a new account registers (read by the identity service)",
    )


class SecuritySettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    twoFactorAuth: Optional[bool] = None
    passwordMinLength: Optional[int] = Field(None, ge=8, le=128)
    passwordExpiration: Optional[int] = Field(None, ge=0, le=365)
    sessionTimeout: Optional[int] = Field(None, ge=5, le=1440)
    maxLoginAttempts: Optional[int] = Field(None, ge=3, le=20)
    lockoutDuration: Optional[int] = Field(None, ge=5, le=1440)


class SystemSettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    platformName: Optional[str] = Field(None, min_length=1, max_length=100)
    supportEmail: Optional[str] = Field(
        None, min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
    )
    maintenanceMode: Optional[bool] = None
    allowNewRegistrations: Optional[bool] = None


class NotificationSettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    emailNotifications: Optional[bool] = None
    notifyOnSupportTicket: Optional[bool] = None
    notifyOnFailedPayment: Optional[bool] = None
    notifyOnNewRegistration: Optional[bool] = None


class PlatformSettingsResponse(BaseModel):
    security: SecuritySettings
    system: SystemSettings
    notifications: NotificationSettings
    version: int


# section name -> (stored model, update model)
SECTIONS = {
    "security": (SecuritySettings, SecuritySettingsUpdate),
    "system": (SystemSettings, SystemSettingsUpdate),
    "notifications": (NotificationSettings, NotificationSettingsUpdate),
}
