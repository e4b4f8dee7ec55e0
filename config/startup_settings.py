"""Startup environment validation settings."""

from __future__ import annotations

import logging

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class StartupSettings(BaseSettings):
    """Env-backed startup invariants for API boot."""

    refcode_env: str = Field(default="", validation_alias=AliasChoices("REFCODE_ENV"))
    refstore_backend: str = Field(
        default="memory",
        validation_alias=AliasChoices("REFSTORE_BACKEND"),
    )
    supabase_url: str = Field(default="", validation_alias=AliasChoices("SUPABASE_URL"))
    supabase_key: str = Field(
        default="",
        validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"),
    )

    model_config = {"extra": "ignore"}

    def validate_runtime_contract(self) -> None:
        backend = (self.refstore_backend or "").strip().lower()
        if backend not in {"memory", "supabase"}:
            raise RuntimeError(f"REFSTORE_BACKEND must be 'memory' or 'supabase', got '{backend or 'unset'}'.")

        if backend == "supabase" and (not self.supabase_url or not self.supabase_key):
            raise RuntimeError(
                "REFSTORE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
            )

        is_production = (self.refcode_env or "").strip().lower() == "production"
        if is_production and backend == "memory":
            logging.getLogger(__name__).warning(
                "Production environment is using the in-memory reference store; "
                "remote description search will always fall back to the master list."
            )


def validate_startup_env() -> None:
    """Validate startup env invariants."""
    StartupSettings().validate_runtime_contract()


__all__ = ["StartupSettings", "validate_startup_env"]
