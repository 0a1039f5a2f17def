from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional


class Settings(BaseSettings):
    # Database Configuration
    database_url: Optional[str] = None
    db_username: Optional[str] = None
    db_password: Optional[str] = None
    db_host: str = "localhost"
    db_port: str = "5432"
    db_name: Optional[str] = None

    # Authentication
    secret_key: str = "your-secret-key-here"
    algorithm: str = "HS256"
    access_token_expire_minutes: Optional[int] = 60 * 24 * 7

    @field_validator('algorithm', mode='before')
    @classmethod
    def parse_algorithm(cls, v):
        if v is None or v == '':
            return "HS256"
        return v

    @field_validator('access_token_expire_minutes', mode='before')
    @classmethod
    def parse_token_expire(cls, v):
        if v is None or v == '':
            return 60 * 24 * 7
        return int(v)

    # AWS S3 Configuration
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "me-central-1"
    s3_bucket: str = "marketplace-assets"

    # Email Configuration
    smtp_server: str = "smtp.office365.com"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_timeout: int = 10
    email_from: str = "info@marketplace.local"
    admin_email: str = "info@marketplace.local"
    company_name: str = "Service Marketplace"

    # Links sent to customers
    frontend_url: str = "http://localhost:4200"
    payment_link_expiry_hours: int = 48
    otp_expiry_minutes: int = 5
    currency: str = "AED"

    rate_limit_enabled: bool = True

    cors_origins: List[str] = ["http://localhost:4200", "http://localhost:3000"]

    @property
    def database_connection_url(self) -> str:
        """Build database URL from individual components or use direct URL"""
        if all([self.db_username, self.db_password, self.db_host, self.db_port, self.db_name]):
            return f"postgresql://{self.db_username}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
        elif self.database_url:
            return self.database_url
        else:
            return "sqlite:///./app.db"  # Fallback to SQLite

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_username and self.smtp_password)

    class Config:
        env_file = ".env"


settings = Settings()
