from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://player:player_secret@db:5432/player_db"
    JWT_SECRET: str = "player-jwt-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 480
    CORS_ORIGINS: list[str] = ["http://localhost:4301", "http://localhost:4200"]

    # Team Roles that can never be deleted or renamed
    DEFAULT_TEAM_ROLE: str = "View Member"
    DEFAULT_VIEW_CREATOR_ROLE: str = "View Admin"
    # Role given to the first user provisioned in an empty system
    ADMIN_ROLE: str = "Administrator"

    CLAIMS_CACHE_ENABLED: bool = True
    CLAIMS_CACHE_EXPIRATION_SECONDS: float = 3600.0
    CLAIMS_CACHE_SWEEP_MINUTES: int = 10

    SEED_ON_STARTUP: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
