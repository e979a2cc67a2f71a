from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    BUSINESS_NAME: str = "Mind Engineering Coaching"
    BUSINESS_TIMEZONE: str = "Asia/Tokyo"

    # Daily template and closed days (Monday=0)
    SLOT_TIMES: str = "10:00,12:00,14:00,16:00"
    CLOSED_WEEKDAYS: str = "5,6"
    SESSION_DURATION_MINUTES: int = 60

    STORE_PROVIDER: str = "memory"  # "memory" | "json" | "sheets"
    STORE_DATA_DIR: str = "./data/records"

    SPREADSHEET_ID: str | None = None
    SHEETS_BASE_URL: str = "https://sheets.googleapis.com/v4"
    SHEET_NAME_CLIENTS: str = "Clients"
    SHEET_NAME_SESSIONS: str = "Sessions"
    SHEET_NAME_EMAIL_LOG: str = "Email Log"

    CALENDAR_INTEGRATION_ENABLED: bool = False
    CALENDAR_EVENTS_FOR_IN_PERSON: bool = True
    GOOGLE_CALENDAR_ID: str = "primary"
    GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"

    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REFRESH_TOKEN: str | None = None
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"

    MAIL_PROVIDER: str = "log"  # "log" | "gmail"
    GMAIL_BASE_URL: str = "https://gmail.googleapis.com/gmail/v1"
    EMAIL_SENDER: str = "Mind Engineering Coaching <no-reply@example.com>"
    OPERATOR_EMAIL: str | None = None

    NOTIFY_MAX_RETRIES: int = 2
    NOTIFY_RETRY_DELAY_SECONDS: float = 1.0
    NOTIFY_MAX_WORKERS: int = 4

    FALLBACK_MEETING_BASE_URL: str = "https://meet.google.com"
    FALLBACK_MEETING_TAG: str = "mec"

    BOOKING_RECONCILE_AFTER_WRITE: bool = True

    ADMIN_API_TOKEN: str | None = None


settings = Settings()
