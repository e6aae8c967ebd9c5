"""Settings via pydantic-settings with SWITCHBOARD_ env prefix.

Model credentials use validation_alias to read the same unprefixed
env vars (ANTHROPIC_API_KEY, ANTHROPIC_AUTH_TOKEN) other tooling uses,
so a single .env file drives everything.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. You can call the tools you are given to "
    "act on the user's behalf. When a tool fails, explain the failure to the "
    "user instead of retrying indefinitely."
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SWITCHBOARD_", env_file=".env", extra="ignore")

    # Runtime
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"
    server_name: str = "switchboard"
    server_version: str = "1.0.0"

    # LLM
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    # Dual auth: auth_token (Bearer) takes precedence over api_key (x-api-key)
    anthropic_auth_token: str = Field("", validation_alias="ANTHROPIC_AUTH_TOKEN")
    model: str = "claude-sonnet-4-5-20250514"
    max_tokens: int = 4096
    api_base_url: str = "https://api.anthropic.com"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Agent loop
    max_iterations: int = 10  # Max model generations per run
    tool_timeout: float = 60.0  # seconds, 0 disables

    # Conversation
    seed_message: str = "Hello there! I'm an AI assistant. How can I help you today?"
    reset_message: str = "Chat history cleared. How can I help you start fresh?"

    # Tools
    remote_tools_url: str = ""  # MCP server whose tools are merged at startup

    # Sessions
    session_idle_timeout: float = 1800.0  # seconds without a request before a session ends, 0 disables
    json_response: bool = False  # answer POSTs with plain JSON instead of an SSE stream

    @model_validator(mode="after")
    def _validate_bounds(self) -> "Settings":
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.tool_timeout < 0:
            raise ValueError("tool_timeout must be >= 0 (0 disables the timeout)")
        if self.session_idle_timeout < 0:
            raise ValueError("session_idle_timeout must be >= 0 (0 disables idle expiry)")
        return self
