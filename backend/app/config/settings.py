from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # Database
    DB_USER: str = Field("relay_admin")
    DB_PASSWORD: str = Field("RelayPass2024")
    DB_NAME: str = Field("meetinglingo")
    DB_HOST: str = Field("postgres")
    DB_PORT: int = Field(5432)
    # Full URL override, e.g. sqlite+aiosqlite:///./relay.db
    DATABASE_URL: str | None = Field(None)

    # Upstream speech-to-speech provider
    OPENAI_API_KEY: str | None = Field(None)
    OPENAI_REALTIME_URL: str = Field("wss://api.openai.com/v1/realtime")
    OPENAI_REALTIME_MODEL: str = Field("gpt-4o-realtime-preview-2024-12-17")
    DEFAULT_VOICE_ID: str = Field("alloy")

    # Relay tuning
    AUDIO_QUEUE_MAX_DEPTH: int = Field(500)  # 0 = unbounded
    MONTHLY_MINUTES_LIMIT: int = Field(0)  # 0 = unlimited
    STORE_AUDIO_CHUNKS: bool = Field(True)  # keep forwarded frames for replay/debug

    # App
    API_HOST: str = Field("0.0.0.0")
    API_PORT: int = Field(8000)
    DEBUG: bool = Field(False)
    LOG_LEVEL: str = Field("INFO")
    METRICS_ENABLED: bool = Field(False)
    METRICS_PORT: int = Field(8001)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_file_encoding="utf-8"
    )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def realtime_endpoint(self) -> str:
        return f"{self.OPENAI_REALTIME_URL}?model={self.OPENAI_REALTIME_MODEL}"


settings = Settings()
