from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DB_URL: str
    DB_ECHO: bool = False
    DB_CREATE_ALL: bool = False

    DEFAULT_CURRENCY: str = "EUR"
    ORDER_NUMBER_PREFIX: str = "ORD"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    HOST: str = "127.0.0.1"
    PORT: int = 8000

    class Config:
        env_file = ".env"

settings = Settings()
