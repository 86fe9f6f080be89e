import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)


DEFAULT_GOAL_OPTIMIZATION_EVENTS = {
    # streams has no conversion flow yet, so it optimizes for link clicks like traffic
    "streams": "LINK_CLICKS",
    "traffic": "LINK_CLICKS",
    "link_clicks": "LINK_CLICKS",
    "conversions": "OFFSITE_CONVERSIONS",
    "sales": "OFFSITE_CONVERSIONS",
    "leads": "LEAD_GENERATION",
    "lead_generation": "LEAD_GENERATION",
    "awareness": "REACH",
    "reach": "REACH",
    # Ghoste campaign templates
    "smart_link_probe": "LINK_CLICKS",
    "one_click_sound": "LINK_CLICKS",
    "follower_growth": "LINK_CLICKS",
    "fan_capture": "OFFSITE_CONVERSIONS",
}

# Actions the manager may recommend per campaign goal. Goals not listed are
# unrestricted; pause is always allowed regardless of this map.
DEFAULT_GOAL_ALLOWED_ACTIONS = {
    "smart_link_probe": ["scale_up", "maintain", "rotate_creative", "pause"],
    "one_click_sound": ["scale_up", "maintain", "test_variation", "pause"],
    "follower_growth": ["scale_up", "maintain", "tighten_audience", "pause"],
    "fan_capture": ["scale_up", "maintain", "rotate_creative", "pause"],
}


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/ghoste"

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_asyncpg(cls, values: dict) -> dict:
        """Supabase gives postgresql:// (or postgres://) — we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url:
            values["database_url"] = url
        return values

    # Supabase auth: access tokens are HS256 JWTs signed with the project JWT secret
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"
    cors_origins: str = "http://localhost:5173,http://localhost:3000,https://ghoste.one"

    # Per sub-read timeout for store queries (seconds)
    store_read_timeout_seconds: float = 8.0

    # Third-party analytics (ephemeral reads only, never persisted)
    analytics_api_url: str = ""
    analytics_api_key: str = ""
    analytics_timeout_seconds: float = 4.0

    # Context aggregation
    click_window_days: int = 7
    context_list_limit: int = 50

    # Score weights and thresholds: initial defaults, to be validated against outcome data
    score_weight_intent: float = 0.5
    score_weight_response: float = 0.3
    score_weight_stability: float = 0.2
    high_confidence_min_clicks: int = 100
    stability_history_windows: int = 4

    # Decision guardrails
    learning_phase_days: int = 3
    scale_factor_high: float = 1.25
    scale_factor_default: float = 1.15

    # Campaign goal -> optimization event. JSON in env, e.g.
    # GOAL_OPTIMIZATION_EVENTS='{"streams": "OFFSITE_CONVERSIONS"}'
    goal_optimization_events: dict[str, str] = dict(DEFAULT_GOAL_OPTIMIZATION_EVENTS)
    goal_allowed_actions: dict[str, list[str]] = {k: list(v) for k, v in DEFAULT_GOAL_ALLOWED_ACTIONS.items()}

    # AI narrative over the manager context
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    anthropic_api_key: str = ""

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if not self.supabase_jwt_secret:
                raise ValueError(
                    "SUPABASE_JWT_SECRET must be set in production. "
                    "Copy it from Supabase: Project Settings → API → JWT Secret."
                )
            if not self.database_url or "localhost" in self.database_url:
                logger.warning("DATABASE_URL appears to point at localhost in production.")
        weights = self.score_weight_intent + self.score_weight_response + self.score_weight_stability
        if abs(weights - 1.0) > 1e-6:
            raise ValueError(f"Score weights must sum to 1.0 (got {weights:.3f})")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def analytics_configured(self) -> bool:
        return bool(self.analytics_api_url)

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["https://ghoste.one", "http://localhost:5173", "http://localhost:3000"]

    def optimization_event_for(self, goal: str | None) -> str | None:
        if not goal:
            return None
        return self.goal_optimization_events.get(goal.strip().lower())

    def allowed_actions_for(self, goal: str | None) -> list[str] | None:
        """None means the goal places no restriction on actions."""
        if not goal:
            return None
        return self.goal_allowed_actions.get(goal.strip().lower())


@lru_cache
def get_settings() -> Settings:
    return Settings()
