from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    platform_role: str = "crm"  # crm | dev
    service_name: str = "syncbridge"
    supabase_url: str = "http://localhost:54321"
    supabase_service_role_key: str = ""
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    cors_allow_origins: str = "*"
    sync_key: str | None = None
    sync_signature_mode: str = "permissive_audit"  # permissive_audit | enforce
    peer_base_url: str | None = None
    peer_timeout_seconds: float = 5.0
    sync_retry_max_attempts: int = 1
    sync_retry_base_delay_seconds: float = 0.25
    sync_retry_max_delay_seconds: float = 2.0
    legacy_organization_ids: str = ""
    fallback_organization_id: str | None = None
    apply_ticket_status_to_tasks: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    def legacy_organization_id_set(self) -> set[str]:
        return {item.strip() for item in self.legacy_organization_ids.split(",") if item.strip()}


settings = Settings()
