from typing import Literal

from pydantic import BaseModel, Field, model_validator


class NewsletterRules(BaseModel):
    base_url: str = "http://localhost:8080"
    confirmation_path: str = "/api/subscriptions/confirm"
    unsubscribe_path: str = "/api/subscriptions/unsubscribe"
    confirmation_token_expiry_hours: int = Field(default=24, gt=0)
    default_page_limit: int = Field(default=10, gt=0)
    site_name: str = "Newsletter"

class PublishingRules(BaseModel):
    fanout_max_workers: int = Field(default=8, ge=1)
    publish_claim_ttl_seconds: int = Field(default=3600, gt=0)

class EmailRules(BaseModel):
    transport: Literal["dev", "smtp"] = "dev"
    sender: str = "newsletter@example.com"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_starttls: bool = True
    smtp_username_env: str | None = "SMTP_USERNAME"
    smtp_password_env: str | None = "SMTP_PASSWORD"

class OpsRules(BaseModel):
    db_path: str = "newsletter.db"
    migrations_dir: str = "migrations"
    required_env: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _db_path_not_empty(self) -> "OpsRules":
        if not self.db_path:
            raise ValueError("ops.db_path cannot be empty")
        return self

class Rules(BaseModel):
    newsletter: NewsletterRules
    publishing: PublishingRules = Field(default_factory=PublishingRules)
    email: EmailRules = Field(default_factory=EmailRules)
    ops: OpsRules = Field(default_factory=OpsRules)
