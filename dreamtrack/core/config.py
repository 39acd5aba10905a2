from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://dreamtrack:dreamtrack@db:5432/dreamtrack"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # Document containers (one logical collection each, partitioned by userId)
    CURRENT_WEEK_CONTAINER: str = "currentWeek"
    PAST_WEEKS_CONTAINER: str = "pastWeeks"
    DREAMS_CONTAINER: str = "dreams"
    SCORING_CONTAINER: str = "scoring"

    # Points awarded per ledger source
    POINTS_WEEKLY_GOAL: int = 5
    POINTS_DREAM_CREATED: int = 10
    POINTS_CONNECT: int = 3
    POINTS_MILESTONE: int = 15

    # Read-modify-write attempts when a conditional write loses a race
    STORE_CONFLICT_RETRIES: int = 3

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
