from typing import Optional
from pydantic import BaseModel, Field, field_validator

DEFAULT_NODE_URL = "ws://localhost:26658"
DEFAULT_NAMESPACE_ID = "deadbeef"


class BlobwatchConfig(BaseModel):
    """Configuration for the blobwatch client.

    This model loads configuration from environment variables and defaults.
    """
    # Celestia node connection
    celestia_node_url: str = Field(
        default=DEFAULT_NODE_URL,
        description="URL of the Celestia light node (ws:// for subscriptions)"
    )
    celestia_node_auth_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the node RPC; None when the node skips auth"
    )
    connect_timeout: float = Field(
        default=30.0,
        description="Seconds to wait for the connection to be established"
    )

    # Blob filtering
    namespace_id: str = Field(
        default=DEFAULT_NAMESPACE_ID,
        description="Hex encoded v0 namespace id (at most 10 bytes)"
    )

    @field_validator('celestia_node_url')
    def validate_node_url(cls, value):
        """Validate the node URL is not blank."""
        if not value or not value.strip():
            raise ValueError("Celestia node URL must not be empty")
        return value.strip()

    @field_validator('celestia_node_auth_token')
    def validate_auth_token(cls, value):
        """Reject empty tokens; absence is expressed with None."""
        if value is not None and value == "":
            raise ValueError("Auth token must not be empty; omit it to skip authentication")
        return value

    @field_validator('connect_timeout')
    def validate_connect_timeout(cls, value):
        """Validate connect timeout is positive."""
        if value <= 0:
            raise ValueError("Connect timeout must be greater than 0")
        return value

    @field_validator('namespace_id')
    def validate_namespace_id(cls, value):
        """Validate the namespace id is hex and fits a v0 namespace."""
        value = value.lower()
        if value.startswith("0x"):
            value = value[2:]
        try:
            raw = bytes.fromhex(value)
        except ValueError:
            raise ValueError(f"Namespace id must be hex encoded, got {value!r}")
        if not raw or len(raw) > 10:
            raise ValueError("Namespace id must be between 1 and 10 bytes")
        return value

    @property
    def namespace_bytes(self) -> bytes:
        return bytes.fromhex(self.namespace_id)

    @property
    def namespace_label(self) -> str:
        """Display label for the namespace, e.g. 0xDEADBEEF."""
        return f"0x{self.namespace_id.upper()}"

    model_config = {
        "validate_assignment": True,
    }


def load_config_from_env() -> BlobwatchConfig:
    """Load configuration from environment variables.

    Returns:
        BlobwatchConfig: Configuration instance with values from environment
    """
    import os

    env_settings = {}

    env_mappings = {
        "CELESTIA_NODE_URL": "celestia_node_url",
        "CELESTIA_NODE_AUTH_TOKEN": "celestia_node_auth_token",
        "BLOBWATCH_CONNECT_TIMEOUT": "connect_timeout",
        "BLOBWATCH_NAMESPACE_ID": "namespace_id",
    }

    # Empty variables count as unset, matching how the CLI reads them
    for env_var, field_name in env_mappings.items():
        if os.environ.get(env_var):
            value = os.environ[env_var]

            if field_name == "connect_timeout":
                value = float(value)

            env_settings[field_name] = value

    return BlobwatchConfig(**env_settings)
