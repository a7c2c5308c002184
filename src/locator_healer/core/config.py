from pydantic_settings import BaseSettings
from pydantic import Field, validator
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # LLM Configuration
    MODEL_PROVIDER: str = "online"  # "online" for Gemini, "local" for Ollama
    GEMINI_API_KEY: str | None = None
    ONLINE_MODEL: str = "gemini/gemini-2.5-flash"
    LOCAL_MODEL: str = "llama3"
    LLM_TEMPERATURE: float = Field(default=0.2, description="Sampling temperature for locator repair prompts")

    # Self-healing Configuration
    SELF_HEALING_ENABLED: bool = Field(default=True, description="Master switch for locator healing")
    SELF_HEALING_CONFIG_PATH: str = Field(default="config/self_healing.yaml", description="YAML file with healing settings")

    # Project layout
    PROJECT_ROOT: str = Field(default=".", description="Root of the UI test project being healed")
    LOCATOR_DIR: str = Field(default="locators", description="Directory (relative to PROJECT_ROOT) holding locator files")
    STEP_MAPPING_FILE: str = Field(default="locatorFinder.json", description="Step to locator-file mapping JSON")
    ARTIFACTS_ROOT: str = Field(default="failures", description="Directory where per-test failure artifacts are written")
    BEST_PRACTICES_PATH: str | None = Field(default=None, description="Optional text file with XPath best practices for the oracle")

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    @validator('MODEL_PROVIDER')
    def validate_model_provider(cls, v):
        """Validate that MODEL_PROVIDER is either 'online' or 'local'."""
        if v.lower() not in ['online', 'local']:
            raise ValueError(f"MODEL_PROVIDER must be 'online' or 'local', got '{v}'")
        return v.lower()

    @validator('LLM_TEMPERATURE')
    def validate_temperature(cls, v):
        """Validate that LLM_TEMPERATURE is between 0 and 2."""
        if v < 0 or v > 2:
            raise ValueError(f"LLM_TEMPERATURE must be between 0 and 2, got {v}")
        return v

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"LOG_LEVEL must be a logging level name, got '{v}'")
        return v.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'allow'  # Allow extra fields from .env file

settings = Settings()
