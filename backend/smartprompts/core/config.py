"""
Core configuration settings for the application.
"""
import json
from typing import Annotated, List, Optional, Union
from pydantic import Field, ConfigDict, field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase Configuration
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_service_role_key: str = Field(..., description="Supabase service role key")

    # JWT Configuration (Supabase Auth tokens are HS256-signed with the project secret)
    jwt_secret_key: str = Field(..., description="Secret used to verify Supabase access tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_audience: str = Field(default="authenticated", description="Expected audience claim")

    # FastAPI Configuration
    api_v1_str: str = Field(default="/api/v1", description="API v1 prefix")
    project_name: str = Field(default="smartprompts", description="Project name")
    environment: str = Field(default="dev", description="Environment (dev, staging, production)")
    debug: bool = Field(default=False, description="Debug mode - set True only for local development")
    app_url: str = Field(default="http://localhost:3000", description="Public URL of the web frontend")

    # CORS Configuration
    allowed_origins: Annotated[List[str], NoDecode] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    @field_validator('allowed_origins', mode='before')
    @classmethod
    def parse_allowed_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse ALLOWED_ORIGINS from string (JSON) or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except (json.JSONDecodeError, ValueError):
                return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    # Stripe Configuration
    stripe_secret_key: Optional[str] = Field(default=None, description="Stripe secret API key")
    stripe_webhook_secret: Optional[str] = Field(default=None, description="Stripe webhook signing secret")
    stripe_price_id_free: str = Field(default="", description="Stripe price id mapped to the free tier")
    stripe_price_id_pro: str = Field(default="", description="Stripe price id mapped to the pro tier")
    stripe_price_id_enterprise: str = Field(default="", description="Stripe price id mapped to the enterprise tier")
    stripe_price_id_lifetime: str = Field(default="", description="Stripe price id mapped to the lifetime tier")
    stripe_deduplicate_events: bool = Field(
        default=False,
        description="Record processed webhook event ids and skip replays"
    )
    billing_protected_tiers: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Tiers that subscription updated/deleted events must not overwrite (e.g. lifetime, admin)"
    )

    @field_validator('billing_protected_tiers', mode='before')
    @classmethod
    def parse_protected_tiers(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse BILLING_PROTECTED_TIERS from string (JSON) or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except (json.JSONDecodeError, ValueError):
                return [tier.strip() for tier in v.split(',') if tier.strip()]
        return v

    # OpenAI Configuration
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4-turbo-preview", description="Model that performs the rewrite")
    openai_default_target_model: str = Field(default="gpt-4", description="Target model assumed when none is given")
    openai_temperature: float = Field(default=0.7, description="Sampling temperature")
    openai_timeout_seconds: float = Field(default=60.0, description="Completion request timeout")

    # Rate Limiting Configuration
    optimize_rate_limit: int = Field(default=10, description="Optimize requests allowed per window per user")
    optimize_rate_window_seconds: int = Field(default=60, description="Optimize rate limit window length")
    rate_limit_sweep_probability: float = Field(
        default=0.01,
        description="Chance that a rate limit check also prunes expired entries"
    )

    # Usage Accounting Configuration
    usage_window_days: int = Field(default=30, description="Length of a monthly usage window in days")

    @property
    def is_production_environment(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ["production", "prod"]

    @property
    def stripe_price_ids(self) -> dict:
        """Configured price ids keyed by tier name."""
        return {
            "free": self.stripe_price_id_free,
            "pro": self.stripe_price_id_pro,
            "enterprise": self.stripe_price_id_enterprise,
            "lifetime": self.stripe_price_id_lifetime,
        }

    model_config = ConfigDict(
        env_file=".env.dev",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
