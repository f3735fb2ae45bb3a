import os
from dataclasses import dataclass, field


BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv(
        "ENGAGEMENT_DATABASE_URL",
        os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(BACKEND_DIR, 'engagement.db')}"),
    )
    admin_signup_code: str = os.getenv("ADMIN_SIGNUP_CODE", "ADMIN123")
    upload_dir: str = os.getenv("UPLOAD_DIR", os.path.join(BACKEND_DIR, "static", "uploads"))
    max_attachment_mb: int = int(os.getenv("MAX_ATTACHMENT_MB", "10"))
    cors_origins: tuple[str, ...] = field(
        default_factory=lambda: _split_csv(
            os.getenv("CORS_ORIGINS", "http://localhost:8000,http://127.0.0.1:8000,http://localhost:3000")
        )
    )
    seed_demo_users: bool = os.getenv("SEED_DEMO_USERS", "true").lower() == "true"
    notify_by_email: bool = os.getenv("NOTIFY_BY_EMAIL", "false").lower() == "true"
    smtp_host: str = os.getenv("SMTP_SERVER", "smtp.gmail.com")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: str = os.getenv("SMTP_EMAIL", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "").replace(" ", "")

    @property
    def max_attachment_bytes(self) -> int:
        return self.max_attachment_mb * 1024 * 1024


settings = Settings()
