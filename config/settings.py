from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Blockchain
    rpc_url: str = Field(default="", description="JSON-RPC URL (falls back per chain ID when empty)")
    chain_id: int = Field(default=11155111, description="Chain ID used for the EIP-712 domain")

    # Smart account factory
    factory_address: str = Field(default="", description="Smart account factory address")
    auto_deploy_accounts: bool = Field(
        default=True,
        description="Deploy a smart account from the gas payer key when none exists",
    )

    # Gas payer (relayer) key
    gas_payer_private_key: str = Field(default="", description="Private key of the gas payer wallet")
    gas_payer_encrypted_key: str = Field(default="", description="Fernet-encrypted gas payer key")
    gas_payer_key_salt: str = Field(default="", description="Hex salt used to encrypt the gas payer key")
    master_encryption_key: str = Field(default="", description="Master key for decrypting the gas payer key")

    # Confirmation waits
    receipt_timeout: float = Field(default=120.0, description="Seconds to wait for a transaction receipt")
    receipt_poll_interval: float = Field(default=2.0, description="Seconds between receipt polls")

    # Relay behaviour
    nonce_preflight: bool = Field(
        default=True,
        description="Reject a relay whose nonce differs from the live account nonce before submitting",
    )
    cross_check_digest: bool = Field(
        default=True,
        description="Compare the locally computed digest with the contract's own hash view",
    )

    # Client-side wallet RPC
    wallet_rpc_url: str = Field(default="", description="JSON-RPC endpoint of an external signer")
    wallet_rpc_timeout: float = Field(default=120.0, description="Seconds to wait for a wallet to answer")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level for entry scripts")

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra fields in .env
    )

    @property
    def has_gas_payer_key(self) -> bool:
        """Return True if a plain or encrypted gas payer key is configured."""
        return bool(self.gas_payer_private_key or self.gas_payer_encrypted_key)


# Global settings instance
settings = Settings()
