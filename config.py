from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    sqlalchemy_database_url: str = "sqlite:///./clinic.db"
    sql_echo: bool = False
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "extra": "forbid"
    }

settings = Settings()
