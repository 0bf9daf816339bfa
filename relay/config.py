"""
Конфигурация релея. Использует pydantic-settings для загрузки переменных окружения.
"""

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()  # Загрузить переменные из .env файла


class Settings(BaseSettings):
    """
    Конфигурация приложения. Все значения берутся из ENV или .env файла.
    """
    HOST: str = Field(default="0.0.0.0", description="Адрес для WebSocket-сервера")
    PORT: int = Field(default=3000, description="Порт для WebSocket-сервера")
    LOG_LEVEL: str = Field(default="INFO", description="Уровень логирования")
    DIAG_LOG_FILE: str = Field(
        default="relay_diag.log", description="Файл диагностики релея (пусто = выключено)"
    )

    BROADCASTER_ADDRESSES: str = Field(
        default="", description="Адреса, которым разрешена роль broadcaster (через запятую)"
    )
    BROADCASTER_TOKEN: str = Field(default="", description="Общий секрет для роли broadcaster")
    TRUST_FORWARDED_FOR: bool = Field(
        default=False, description="Брать адрес клиента из X-Forwarded-For"
    )

    HEARTBEAT_INTERVAL: float = Field(default=30.0, gt=0, description="Период ping, сек")
    STATUS_INTERVAL: float = Field(default=1.5, gt=0, description="Период рассылки status, сек")
    RELAY_BUFFER_SIZE: int = Field(default=5, ge=0, description="Сколько последних кадров хранить")
    LISTENER_QUEUE_SIZE: int = Field(default=32, ge=1, description="Лимит очереди слушателя")
    MAX_MESSAGE_SIZE: int = Field(default=1 << 20, description="Максимальный размер сообщения")
    HEALTH_PATH: str = Field(default="/health", description="Путь health-check")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def broadcaster_addresses(self) -> list[str]:
        return [a.strip() for a in self.BROADCASTER_ADDRESSES.split(",") if a.strip()]


settings = Settings()
