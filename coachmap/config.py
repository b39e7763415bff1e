# coachmap/config.py
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    # ── Database
    DATABASE_URL: str = "sqlite:///./coachmap.db"  # placeholder; set the real URL in .env

    # OpenAI (checked at call time so the API can still boot and report a 500)
    OPENAI_API_KEY: Optional[str] = None

    # Narrative Map generation
    NARRATIVE_MAP_MODEL: str = Field("gpt-4o", env="NARRATIVE_MAP_MODEL")
    NARRATIVE_MAP_MAX_TOKENS: int = Field(4096, env="NARRATIVE_MAP_MAX_TOKENS")
    NARRATIVE_MAP_TEMPERATURE: float = Field(0.4, env="NARRATIVE_MAP_TEMPERATURE")
    NARRATIVE_MAP_FETCH_WORKERS: int = Field(8, env="NARRATIVE_MAP_FETCH_WORKERS")
    # Conditional version bump; False restores last-writer-wins
    NARRATIVE_MAP_STRICT_VERSIONING: bool = Field(True, env="NARRATIVE_MAP_STRICT_VERSIONING")

    # Admin HTML views
    ADMIN_API_TOKEN: Optional[str] = None

    # Dev reset + seed
    RESET_DB_ON_STARTUP: bool = Field(False, env="RESET_DB_ON_STARTUP")
    SEED_ZONE_DEFAULTS: bool = Field(True, env="SEED_ZONE_DEFAULTS")

    # Debug logging
    COACHMAP_DEBUG: bool = Field(False, env="COACHMAP_DEBUG")


    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # ignore unexpected keys instead of erroring
    )

settings = Settings()
