from datetime import timedelta
from functools import lru_cache
from typing import List

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | List[str]) -> List[str]:
    if isinstance(value, list):
        return value
    return [v.strip() for v in str(value).split(",") if v and v.strip()]


class OtpPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    ttl_minutes: int = 15
    max_attempts: int = 3
    code_digits: int = 6

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.ttl_minutes)


class RateLimitPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    window_minutes: int = 5
    max_sends: int = 3

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)


class InvitationPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    ttl_days: int = 7
    token_bytes: int = 32

    @property
    def ttl(self) -> timedelta:
        return timedelta(days=self.ttl_days)


class UploadPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    upload_url_ttl_seconds: int = 300
    max_expiry_hours: int = 24 * 30


class AccessPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    verified_minutes: int = 30
    download_url_ttl_seconds: int = 3600

    @property
    def verified_window(self) -> timedelta:
        return timedelta(minutes=self.verified_minutes)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AETHERVAULT_",
        extra="ignore",
    )

    app_name: str = "AetherVault Share API"
    database_url: str = "sqlite:///./aethervault.db"
    db_echo: bool = False

    # values must come from environment/.env to avoid hardcoding secrets
    jwt_secret: str = ""
    jwt_issuer: str = "aethervault"
    access_token_exp_minutes: int = 60
    passcode_secret: str = ""

    otp_ttl_minutes: int = 15
    otp_max_attempts: int = 3
    sms_rate_limit_minutes: int = 5
    sms_rate_limit_count: int = 3
    verified_access_minutes: int = 30
    invitation_ttl_days: int = 7
    upload_url_ttl_seconds: int = 300
    download_url_ttl_seconds: int = 3600
    max_expiry_hours: int = 24 * 30

    blob_backend: str = "memory"
    # where the API itself is reachable; the memory backend signs URLs against it
    blob_base_url: str = "http://localhost:8000"
    s3_bucket: str = ""
    s3_region: str = "auto"
    s3_endpoint_url: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    notification_backend: str = "log"
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_messaging_service_sid: str = ""
    twilio_from_number: str = ""
    twilio_timeout_seconds: float = 10.0
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_timeout_seconds: float = 10.0
    mail_from: str = "AetherVault <no-reply@aethervault.local>"

    public_base_url: str = "http://localhost:3000"
    cors_origins_raw: str = "http://localhost:3000"
    enable_docs: bool = True
    log_level: str = "INFO"
    log_dir: str | None = None

    @property
    def cors_origins(self) -> List[str]:
        parsed = _split_csv(self.cors_origins_raw)
        return parsed or ["http://localhost:3000"]

    def otp_policy(self) -> OtpPolicy:
        return OtpPolicy(ttl_minutes=self.otp_ttl_minutes, max_attempts=self.otp_max_attempts)

    def rate_limit_policy(self) -> RateLimitPolicy:
        return RateLimitPolicy(window_minutes=self.sms_rate_limit_minutes, max_sends=self.sms_rate_limit_count)

    def invitation_policy(self) -> InvitationPolicy:
        return InvitationPolicy(ttl_days=self.invitation_ttl_days)

    def upload_policy(self) -> UploadPolicy:
        return UploadPolicy(
            upload_url_ttl_seconds=self.upload_url_ttl_seconds,
            max_expiry_hours=self.max_expiry_hours,
        )

    def access_policy(self) -> AccessPolicy:
        return AccessPolicy(
            verified_minutes=self.verified_access_minutes,
            download_url_ttl_seconds=self.download_url_ttl_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
