from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_name: str = "ThinkDrills"
    debug: bool = False
    app_url: str = "http://localhost:3000"

    # Supabase
    supabase_url: str = ""
    supabase_service_key: str = ""

    # LLM provider: "openai" or "gemini"
    llm_provider: str = "openai"

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-3.5-turbo"
    openai_temperature: float = 0.7
    openai_timeout: float = 60.0

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    # Question generation
    max_retries: int = 3
    question_count: int = 10
    batch_size: int = 10
    batch_pause: float = 0.5  # seconds between batches

    # Rate limits for the completion provider
    requests_per_minute: int = 5
    requests_per_hour: int = 100
    retry_delay: float = 1.0  # seconds; pacing floor and first backoff step

    # Resend (email delivery)
    resend_api_key: str = ""
    resend_from_email: str = "onboarding@resend.dev"
    reset_token_ttl_minutes: int = 60

    # Student logins are Supabase Auth users with a synthetic address
    student_email_domain: str = "students.thinkdrills.app"

    # CORS
    frontend_url: str = "http://localhost:3000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def llm_api_key(self) -> str:
        if self.llm_provider == "gemini":
            return self.gemini_api_key
        return self.openai_api_key

    @property
    def llm_model(self) -> str:
        if self.llm_provider == "gemini":
            return self.gemini_model
        return self.openai_model


@lru_cache
def get_settings() -> Settings:
    return Settings()
