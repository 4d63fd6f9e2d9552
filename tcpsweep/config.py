from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .pool import MAX_PROBES
from .utils import MAX_PORT, MIN_PORT


class ScanConfig(BaseModel):
    """
    Validation model for scan parameters.
    Everything is checked before a single socket is opened.
    """
    start_host: int = Field(..., ge=0, le=0xFFFFFFFF)
    end_host: int = Field(..., ge=0, le=0xFFFFFFFF)
    start_port: int
    end_port: int
    timeout: float = Field(5.0, gt=0)
    concurrency: int = 256
    interval_ms: int = Field(500, ge=0)
    output_file: Optional[str] = None
    verbose: bool = False

    @field_validator("start_port", "end_port")
    @classmethod
    def validate_port(cls, v):
        if not MIN_PORT <= v <= MAX_PORT:
            raise ValueError(f"Port must be a number within {MIN_PORT}-{MAX_PORT}")
        return v

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v):
        if v < 1:
            raise ValueError("Sockets number must be at least 1.")
        if v > MAX_PROBES:
            raise ValueError(f"Max sockets number is {MAX_PROBES}.")
        return v

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.start_host > self.end_host:
            raise ValueError("Invalid host range.")
        if self.start_port > self.end_port:
            raise ValueError("Invalid port range.")
        # Full precision: 1500ms against a 1s timeout is rejected.
        if self.interval_ms / 1000 > self.timeout:
            raise ValueError("Internal sleep time cannot be above timeout value.")
        return self

    @property
    def interval(self) -> float:
        return self.interval_ms / 1000

    @property
    def total_hosts(self) -> int:
        return self.end_host - self.start_host + 1

    @property
    def total_ports(self) -> int:
        return self.end_port - self.start_port + 1

    @property
    def total_targets(self) -> int:
        return self.total_hosts * self.total_ports

    @property
    def pool_size(self) -> int:
        return min(self.concurrency, self.total_targets)


def describe_errors(exc: ValidationError) -> str:
    """Flattens a ValidationError into operator-readable lines."""
    lines = []
    for err in exc.errors():
        msg = err["msg"].removeprefix("Value error, ")
        field = ".".join(str(part) for part in err["loc"])
        lines.append(f"{field}: {msg}" if field else msg)
    return "\n".join(lines)
