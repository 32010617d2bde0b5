from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    store_backend: str = "memory"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    firebase_credentials: str = ""
    firebase_project_id: str = ""
    preferences_dir: str = ""
    langsmith_api_key: str = ""
    langsmith_project: str = "corpgpt"
    langsmith_tracing: str = "false"
    frontend_url: str = "http://localhost:5173"
    log_level: str = "info"
    # Accept the bearer token itself as the user id (local development only)
    dev_auth: bool = False
    session_idle_timeout: float = 900.0
    session_sweep_interval: float = 60.0

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
