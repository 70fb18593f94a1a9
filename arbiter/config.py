"""Configuration management for Arbiter."""

from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM Provider API Keys
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None

    # Database Configuration
    database_path: str = "data/arbiter.db"

    # Logging Configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # LLM Model Configuration
    default_llm_model_claude: str = "claude-3-5-sonnet-20241022"
    default_llm_model_openai: str = "gpt-4-turbo-preview"
    default_llm_model_gemini: str = "gemini-1.5-pro"

    # Committee Configuration
    committee_enabled_proposers: str = "openai,claude,gemini"
    committee_min_proposals: int = 3
    committee_max_proposals_per_agent: int = 2
    committee_max_voting_rounds: int = 10
    committee_discussion_rounds: int = 1
    committee_discussion_strategy: str = "live"
    proposer_timeout_seconds: float = 60.0
    peer_rationale_chars: int = 200

    # Judge Configuration
    judge_rule_based_weight: float = 0.4
    judge_llm_weight: float = 0.6
    judge_pairwise_rounds: int = 3
    judge_provider: str = "openai"
    judge_randomize_order: bool = True
    judge_mask_agent_names: bool = True
    judge_normalize_length: bool = True
    rule_judge_min_confidence: float = 0.6
    rule_judge_min_evidence_count: int = 2
    rule_judge_min_rationale_length: int = 100
    rule_judge_require_structured_evidence: bool = False
    rule_judge_penalize_inconsistency: bool = True

    # Coordination
    coordinator_cooldown_seconds: float = 15.0

    # Event bus
    event_history_max_age_seconds: float = 24 * 60 * 60
    subscriber_queue_size: int = 100

    # Settlement gateway
    settlement_base_url: str = "http://localhost:8545/api/v1"
    settlement_api_key: Optional[str] = None
    settlement_timeout_seconds: float = 30.0

    # Monitor
    monitor_interval_seconds: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def enabled_proposers(self) -> List[str]:
        """Get enabled proposer types as a list."""
        return [
            name.strip().lower()
            for name in self.committee_enabled_proposers.split(",")
            if name.strip()
        ]

    @property
    def database_path_obj(self) -> Path:
        """Get database path as Path object."""
        return Path(self.database_path)

    def ensure_database_dir(self) -> None:
        """Ensure database directory exists."""
        self.database_path_obj.parent.mkdir(parents=True, exist_ok=True)


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create settings singleton instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
