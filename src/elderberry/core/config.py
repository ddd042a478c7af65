# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Application configuration via environment variables and .env files."""

from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from elderberry.core.constants import TaxiiVersion

_PEM_END = "-----END CERTIFICATE-----"


def _split_pems(v: object) -> list[str]:
    """Split a concatenated PEM bundle into one string per certificate."""
    if isinstance(v, list):
        return v
    if not isinstance(v, str) or not v.strip():
        return []
    pems = []
    for chunk in v.split(_PEM_END):
        if chunk.strip():
            pems.append(chunk.strip() + "\n" + _PEM_END + "\n")
    return pems


class ConnectionSettings(BaseModel):
    """Everything needed to reach one TAXII server.

    Secrets are part of the model and are serialised by ``model_dump_json``.
    """

    discovery_url: str
    username: str = ""
    password: str = ""

    # Proxy
    use_proxy: bool = False
    proxy_host: str = ""
    proxy_port: int = 0

    # Key material: PKCS#12 file, or PEM key + chain
    key_store_file: Path | None = None
    key_store_password: str | None = None
    private_key_pem: str | None = None
    client_certificate_pem_chain: list[str] = []

    # Trust material: PKCS#12 file, or PEM certificates
    trust_store_file: Path | None = None
    trust_store_password: str | None = None
    trusted_pem_certificates: list[str] = []
    trust_self_signed: bool = False

    timeout: float = 5.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ELDERBERRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )

    # Server
    discovery_url: str = ""
    taxii_version: TaxiiVersion = TaxiiVersion.V11
    timeout: float = 5.0

    # Basic auth
    username: str = ""
    password: str = ""

    # Proxy
    use_proxy: bool = False
    proxy_host: str = ""
    proxy_port: int = 0

    # TLS client authentication
    key_store_file: Path | None = None
    key_store_password: str | None = None
    private_key_pem: str | None = None
    client_certificate_pem_chain: Annotated[list[str], NoDecode] = []

    # TLS trust
    trust_store_file: Path | None = None
    trust_store_password: str | None = None
    trusted_pem_certificates: Annotated[list[str], NoDecode] = []
    trust_self_signed: bool = False

    @field_validator("client_certificate_pem_chain", mode="before")
    @classmethod
    def _parse_client_chain(cls, v: object) -> list[str]:
        return _split_pems(v)

    @field_validator("trusted_pem_certificates", mode="before")
    @classmethod
    def _parse_trusted_certificates(cls, v: object) -> list[str]:
        return _split_pems(v)

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    def connection_settings(self) -> ConnectionSettings:
        return ConnectionSettings.model_validate(
            self.model_dump(exclude={"taxii_version", "log_level", "log_format"})
        )


def get_settings() -> Settings:
    return Settings()
