"""
Process-supervisor contract.

The service runs under PM2 using the JSON app declaration in ecosystem.json.
This module loads that declaration and checks the invariants the deployment
relies on, so /api/status can report them and a broken file fails loudly.
"""
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ProcessSpecError


_MEMORY_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}

REQUIRED_PORT = 3001
REQUIRED_APP_ENV = "production"
REQUIRED_ENV_FILE = ".env"


def parse_memory_limit(value: str) -> int:
    """
    Convert a PM2 memory limit ("500M", "1G", "200K") to bytes.

    Examples:
        >>> parse_memory_limit("500M")
        524288000
    """
    match = re.fullmatch(r"\s*(\d+)\s*([KMG]?)B?\s*", value.upper())
    if not match:
        raise ValueError(f"Invalid memory limit: {value!r}")
    return int(match.group(1)) * _MEMORY_UNITS[match.group(2)]


class ProcessSpec(BaseModel):
    """One app entry of a PM2 ecosystem declaration."""

    name: str
    script: str
    args: Union[List[str], str, None] = None
    interpreter: Optional[str] = None
    cwd: str
    instances: int = 1
    autorestart: bool = True
    watch: bool = False
    max_memory_restart: str
    env: Dict[str, Any] = Field(default_factory=dict)
    env_file: Optional[str] = Field(default=None, validate_default=True)
    error_file: str
    out_file: str
    log_file: str
    time: bool = Field(default=False, validate_default=True)

    @field_validator("instances")
    @classmethod
    def single_instance(cls, value: int) -> int:
        if value != 1:
            raise ValueError("the poller keeps state in memory and must run as exactly one instance")
        return value

    @field_validator("autorestart")
    @classmethod
    def restarts_on_crash(cls, value: bool) -> bool:
        if not value:
            raise ValueError("autorestart must be enabled")
        return value

    @field_validator("time")
    @classmethod
    def timestamped_logs(cls, value: bool) -> bool:
        if not value:
            raise ValueError("log timestamps (time) must be enabled")
        return value

    @field_validator("max_memory_restart")
    @classmethod
    def valid_memory_limit(cls, value: str) -> str:
        parse_memory_limit(value)
        return value

    @field_validator("env_file")
    @classmethod
    def loads_dotenv(cls, value: Optional[str]) -> Optional[str]:
        if value != REQUIRED_ENV_FILE:
            raise ValueError(f"env_file must be {REQUIRED_ENV_FILE!r}")
        return value

    @model_validator(mode="after")
    def production_environment(self):
        try:
            port = self.port
        except (TypeError, ValueError):
            raise ValueError(f"env.PORT is not a number: {self.env.get('PORT')!r}")
        if port != REQUIRED_PORT:
            raise ValueError(f"env.PORT must be {REQUIRED_PORT}, got {port}")
        if self.env.get("APP_ENV") != REQUIRED_APP_ENV:
            raise ValueError(f"env.APP_ENV must be {REQUIRED_APP_ENV!r}")
        return self

    @model_validator(mode="after")
    def distinct_log_files(self):
        paths = self.log_paths
        if any(not p.strip() for p in paths.values()):
            raise ValueError("log file paths must not be empty")
        if len(set(paths.values())) != len(paths):
            raise ValueError("error, out and combined log files must be distinct")
        return self

    @property
    def log_paths(self) -> Dict[str, str]:
        return {"error": self.error_file, "out": self.out_file, "combined": self.log_file}

    @property
    def memory_limit_bytes(self) -> int:
        return parse_memory_limit(self.max_memory_restart)

    @property
    def port(self) -> Optional[int]:
        port = self.env.get("PORT")
        return int(port) if port is not None else None


def load_process_spec(path: Union[str, Path], app_name: Optional[str] = None) -> ProcessSpec:
    """
    Load and validate an app declaration from a PM2 JSON ecosystem file.

    Args:
        path: Path to ecosystem.json
        app_name: App to pick; the first app when omitted

    Returns:
        Validated ProcessSpec

    Raises:
        ProcessSpecError: If the file is missing, malformed or violates the contract
    """
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ProcessSpecError(f"Cannot read process file {path}: {e}") from e

    apps = document.get("apps") if isinstance(document, dict) else None
    if not apps:
        raise ProcessSpecError(f"No apps declared in {path}")

    if app_name is None:
        entry = apps[0]
    else:
        entry = next((a for a in apps if a.get("name") == app_name), None)
        if entry is None:
            raise ProcessSpecError(f"App {app_name!r} not declared in {path}")

    try:
        return ProcessSpec.model_validate(entry)
    except ValidationError as e:
        raise ProcessSpecError(f"Invalid app declaration in {path}: {e}") from e
