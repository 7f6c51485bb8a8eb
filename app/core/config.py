import os
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings and configuration"""

    # ============ APP SETTINGS ============
    APP_NAME: str = "Persona Chat Relay"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"

    # ============ SERVER SETTINGS ============
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", 8000))
    RELOAD: bool = os.getenv("RELOAD", "False").lower() == "true"

    # ============ CORS SETTINGS ============
    ALLOWED_ORIGINS: list = os.getenv("ALLOWED_ORIGINS", "*").split(",")

    # ============ LLM SETTINGS (DeepSeek, OpenAI-compatible) ============
    DEEPSEEK_API_KEY: Optional[str] = None
    LLM_BASE_URL: str = "https://api.deepseek.com"
    LLM_MODEL_NAME: str = "deepseek-chat"

    # Generation parameters
    LLM_TEMPERATURE: float = 0.9
    LLM_MAX_TOKENS: int = 600
    HISTORY_WINDOW: int = 10

    # Upstream timeouts (seconds)
    LLM_CONNECT_TIMEOUT: float = 10.0
    LLM_READ_TIMEOUT: float = 60.0

    # ============ VECTOR STORE SETTINGS (Upstash Vector) ============
    UPSTASH_VECTOR_URL: Optional[str] = None
    UPSTASH_VECTOR_TOKEN: Optional[str] = None

    # Retrieval
    RETRIEVAL_TOP_K: int = 5
    SIMILARITY_THRESHOLD: float = 0.5
    RETRIEVAL_TIMEOUT: float = 5.0

    # ============ CHAT LOG SETTINGS (Upstash Redis) ============
    UPSTASH_REDIS_URL: Optional[str] = None
    UPSTASH_REDIS_TOKEN: Optional[str] = None
    CHAT_LOG_KEY_PREFIX: str = "chat:"
    SESSION_INDEX_KEY: str = "chat:sessions"
    LOG_STORE_TIMEOUT: float = 10.0

    # Log viewer
    LOGS_SECRET: Optional[str] = None
    LOGS_DEFAULT_LIMIT: int = 50

    # ============ CONTACT SETTINGS (Resend) ============
    RESEND_API_KEY: Optional[str] = None
    EMAIL_API_URL: str = "https://api.resend.com/emails"
    CONTACT_FROM: str = "Chat Bot <onboarding@resend.dev>"
    CONTACT_TO: str = "yjz.haruka@gmail.com"
    CONTACT_SUBJECT: str = "[网站留言] 来自 harukayang.com 的新消息"
    CONTACT_TIMEZONE: str = "Asia/Tokyo"
    EMAIL_TIMEOUT: float = 10.0

    # ============ KNOWLEDGE / INDEXING SETTINGS ============
    KNOWLEDGE_DIR: str = os.getenv("KNOWLEDGE_DIR", "./knowledge")
    PERSONA_NAME: str = "悠"

    # Batch upsert into the vector store
    INDEX_BATCH_SIZE: int = 50
    INDEX_BATCH_DELAY: float = 0.5
    INDEX_MANIFEST_NAME: str = ".index-manifest.json"

    # Log export
    EXPORT_DIR: str = os.getenv("EXPORT_DIR", "./logs/sessions")

    # ============ LOGGING SETTINGS ============
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE", None)

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Instantiate settings
settings = Settings()
