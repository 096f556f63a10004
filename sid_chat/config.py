"""
Configuration management for SID Chat.

Loads all configuration from environment variables with sensible defaults
for local development.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


DEFAULT_SYSTEM_PROMPT = (
    "You are a database assistant for the SID table browser. "
    "Use the available tools to answer questions about the databases. "
    "When the user asks to switch the active database, reply with only this "
    'JSON object: {"action": "CHANGE_DATABASE", "database": "<name>", '
    '"message": "<short confirmation for the user>"}'
)


@dataclass
class CompletionConfig:
    """Configuration for the language-model completion service."""
    base_url: str = os.getenv("COMPLETION_BASE_URL", "https://api.openai.com/v1")
    api_key: str = os.getenv("COMPLETION_API_KEY", "")
    model: str = os.getenv("COMPLETION_MODEL", "gpt-4o-mini")
    max_tokens: int = int(os.getenv("COMPLETION_MAX_TOKENS", "1000"))
    temperature: float = float(os.getenv("COMPLETION_TEMPERATURE", "0.5"))
    timeout: float = float(os.getenv("COMPLETION_TIMEOUT", "60"))
    max_retries: int = int(os.getenv("COMPLETION_MAX_RETRIES", "3"))
    retry_delay: float = float(os.getenv("COMPLETION_RETRY_DELAY", "1.0"))
    backoff_factor: float = float(os.getenv("COMPLETION_BACKOFF_FACTOR", "2.0"))


@dataclass
class ToolHostConfig:
    """Configuration for the tool host connection.

    ``stdio`` spawns ``script`` as a subprocess; ``http`` talks to ``url``.
    """
    transport: str = os.getenv("TOOL_HOST_TRANSPORT", "stdio")
    script: str = os.getenv("TOOL_HOST_SCRIPT", "../sid-mcp/build/index.js")
    url: str = os.getenv("TOOL_HOST_URL", "http://localhost:8080/mcp")
    token: str = os.getenv("TOOL_HOST_TOKEN", "")
    timeout: float = float(os.getenv("TOOL_HOST_TIMEOUT", "30"))
    client_name: str = os.getenv("TOOL_HOST_CLIENT_NAME", "SID-Client")
    client_version: str = os.getenv("TOOL_HOST_CLIENT_VERSION", "1.0.0")


@dataclass
class OrchestratorConfig:
    """Configuration for the conversation orchestrator."""
    max_rounds: int = int(os.getenv("MAX_TOOL_ROUNDS", "5"))
    system_prompt: str = os.getenv("ORCHESTRATOR_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)


@dataclass
class ServerConfig:
    """Configuration for the FastAPI server."""
    host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    port: int = int(os.getenv("SERVER_PORT", "5051"))
    reload: bool = os.getenv("SERVER_RELOAD", "false").lower() == "true"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    public_key: str = os.getenv("LANGFUSE_PUBLIC_KEY", "")
    secret_key: str = os.getenv("LANGFUSE_SECRET_KEY", "")
    host: str = os.getenv("LANGFUSE_HOST", "")
    debug: bool = os.getenv("LANGFUSE_DEBUG", "false").lower() == "true"

    @property
    def enabled(self) -> bool:
        """Auto-enable when both keys are configured."""
        return bool(self.public_key and self.secret_key)


@dataclass
class Config:
    """Main configuration container."""
    completion: CompletionConfig
    tool_host: ToolHostConfig
    orchestrator: OrchestratorConfig
    server: ServerConfig
    langfuse: LangfuseConfig
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def get_config() -> Config:
    """Get the application configuration."""
    return Config(
        completion=CompletionConfig(),
        tool_host=ToolHostConfig(),
        orchestrator=OrchestratorConfig(),
        server=ServerConfig(),
        langfuse=LangfuseConfig(),
    )


# Global config instance
config = get_config()
