"""Runtime configuration helpers for the change stream."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .cdc.lsn import Lsn


@dataclass(frozen=True)
class Settings:
    """Immutable container for change stream configuration."""

    server_name: str
    snapshot_mode: str
    checkpoint_backend: str
    resume_path: Path
    resume_fsync: bool
    out_of_order_policy: str
    metrics_namespace: str = "informix_cdc"
    resume_lsn: Optional[Lsn] = None

    @property
    def capture_snapshot(self) -> bool:
        return self.snapshot_mode != "no_data"


def _as_bool(value: Optional[str], default: bool) -> bool:
    """Convert environment strings to booleans."""
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no"}


def _coerce_snapshot_mode(value: Optional[str]) -> str:
    """Translate CDC_SNAPSHOT_MODE to a supported value."""
    if value is None:
        return "initial"
    normalized = value.strip().lower()
    if normalized == "schema_only":
        return "no_data"
    if normalized in {"initial", "no_data"}:
        return normalized
    return "initial"


def _coerce_checkpoint_backend(value: Optional[str]) -> str:
    if value is None:
        return "file"
    normalized = value.strip().lower()
    if normalized in {"memory", "file"}:
        return normalized
    return "file"


def _coerce_out_of_order_policy(value: Optional[str]) -> str:
    if value is None:
        return "fail"
    normalized = value.strip().lower()
    if normalized in {"fail", "skip"}:
        return normalized
    return "fail"


def load_settings() -> Settings:
    """Load configuration from the environment (and `.env`)."""
    load_dotenv()
    server_name = os.getenv("CDC_SERVER_NAME", "informix").strip() or "informix"
    snapshot_mode = _coerce_snapshot_mode(os.getenv("CDC_SNAPSHOT_MODE"))
    checkpoint_backend = _coerce_checkpoint_backend(
        os.getenv("CDC_CHECKPOINT_BACKEND")
    )
    resume_path = Path(os.getenv("CDC_RESUME_PATH", "cdc_resume_positions.json"))
    resume_fsync = _as_bool(os.getenv("CDC_RESUME_FSYNC"), False)
    out_of_order_policy = _coerce_out_of_order_policy(
        os.getenv("CDC_OUT_OF_ORDER_POLICY")
    )
    metrics_namespace = (
        os.getenv("CDC_METRICS_NAMESPACE", "informix_cdc").strip() or "informix_cdc"
    )

    raw_resume_lsn = os.getenv("CDC_RESUME_LSN")
    resume_lsn = (
        Lsn.of(raw_resume_lsn) if raw_resume_lsn and raw_resume_lsn.strip() else None
    )

    return Settings(
        server_name=server_name,
        snapshot_mode=snapshot_mode,
        checkpoint_backend=checkpoint_backend,
        resume_path=resume_path,
        resume_fsync=resume_fsync,
        out_of_order_policy=out_of_order_policy,
        metrics_namespace=metrics_namespace,
        resume_lsn=resume_lsn,
    )
