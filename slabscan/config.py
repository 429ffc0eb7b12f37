from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "SlabScan"
    debug: bool = False
    log_level: str = "INFO"

    allowed_origin: str = "*"

    # Empty means scans live in process memory only
    database_url: str = ""

    # Empty means the offline identity fallback is always used
    anthropic_api_key: str = ""
    vision_model: str = "claude-sonnet-4-20250514"

    # Empty credentials mean no marketplace comps; heuristic pricing only
    ebay_client_id: str = ""
    ebay_client_secret: str = ""
    ebay_marketplace_id: str = "EBAY-US"

    # Applied to every outbound call (vision, certificate, marketplace)
    http_timeout_seconds: float = 12.0


settings = Settings()


# =============================================================================
# VALUATION POLICY
# =============================================================================

# Scans below this confidence are flagged for user confirmation
CONFIRMATION_THRESHOLD = 0.82

# Flat confidence boost when a grading authority corroborates the slab
CERT_CONFIDENCE_BOOST = 0.10

# Confidence never exceeds this, even after corroboration
MAX_CONFIDENCE = 0.99

# Reported comp window; fixed, not derived from the comps themselves
VALUATION_WINDOW_DAYS = 90

# Marketplace tokens are refreshed this many seconds before they expire
TOKEN_REFRESH_MARGIN_SECONDS = 30
