from urllib.parse import quote

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Full URL wins over the individual pieces below when set
    DATABASE_URL: str | None = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "taskboard"
    DB_USERNAME: str = "postgres"
    DB_PASSWORD: str = ""
    DB_STATEMENT_TIMEOUT_MS: int = 30_000
    DB_ISOLATION_LEVEL: str = "READ COMMITTED"

    HOST: str = "0.0.0.0"
    PORT: int = 8081
    DEBUG: bool = False
    LOG_FILE: str | None = None
    CORS_ORIGINS: str = ""

    EXTERNAL_ID_PREFIX: str = "user_"

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    ALLOW_EMPTY_BOARDS: bool = True

    @property
    def db_conn_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            "postgresql+psycopg://"  # Ensures we use psycopg3
            f"{self.db_credentials}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def db_credentials(self) -> str:
        # https://stackoverflow.com/a/68268537
        if self.DB_PASSWORD:
            credentials = f"{self.DB_USERNAME}:{quote(self.DB_PASSWORD)}"
        else:
            credentials = self.DB_USERNAME
        return credentials

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
