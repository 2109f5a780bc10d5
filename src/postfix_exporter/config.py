import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

import attrs
import toml

__all__ = ["ExporterConfiguration"]

logger = logging.getLogger(__name__)


def _positive(instance, attribute, value):
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


@attrs.define
class ExporterConfiguration:
    """
    Settings of the exporter.

    Values are taken from the defaults below, then from a TOML file, then from the
    environment variables used by the original shell exporter (POSTFIX_LOG,
    POSTFIX_QUEUE_DIR, METRICS_PREFIX, LOG_LINES, STATE_FILE, LISTEN_ADDRESS,
    LISTEN_PORT, LOG_LEVEL), and finally from command line options.
    """

    log_path: Path = attrs.field(default=Path("/var/log/mail.log"), converter=Path)
    queue_dir: Path = attrs.field(default=Path("/var/spool/postfix"), converter=Path)
    metrics_prefix: str = "postfix"
    # Number of trailing log lines classified when no position has been persisted
    log_lines: int = attrs.field(default=10000, converter=int, validator=_positive)
    state_file: Path = attrs.field(
        default=Path("/var/lib/postfix-exporter/state"), converter=Path
    )
    listen_address: str = "0.0.0.0"
    listen_port: int = attrs.field(default=9154, converter=int)
    log_level: str = "info"

    @property
    def lock_file(self) -> Path:
        return self.state_file.with_name(self.state_file.name + ".lock")

    @classmethod
    def load_toml(cls, path, skip_unexpected_fields=False) -> "ExporterConfiguration":
        config_fields = {field.name for field in attrs.fields(cls)}
        input_dict = toml.load(path)
        unexpected_fields = set(input_dict.keys()) - config_fields
        if unexpected_fields:
            if skip_unexpected_fields:
                logger.info(
                    f"Skipping unexpected fields in toml file {path}: "
                    + ", ".join(sorted(unexpected_fields))
                )
                for field in unexpected_fields:
                    input_dict.pop(field)
            else:
                raise ValueError(f"Unexpected fields: {unexpected_fields}")

        return cls(**input_dict)

    def dump_toml(self, path: Path):
        with Path(path).open("w") as fp:
            toml.dump(self.as_dict(), fp)

    def as_dict(self) -> Dict:
        return attrs.asdict(
            self, value_serializer=lambda _, __, value: str(value) if isinstance(value, Path) else value
        )

    def update_from_env(self, environ: Optional[Mapping[str, str]] = None) -> "ExporterConfiguration":
        environ = os.environ if environ is None else environ
        overrides = {
            field: environ[name]
            for name, field in ENV_VARIABLES.items()
            if environ.get(name)
        }
        return attrs.evolve(self, **overrides)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExporterConfiguration":
        return cls().update_from_env(environ)


ENV_VARIABLES = {
    "POSTFIX_LOG": "log_path",
    "POSTFIX_QUEUE_DIR": "queue_dir",
    "METRICS_PREFIX": "metrics_prefix",
    "LOG_LINES": "log_lines",
    "STATE_FILE": "state_file",
    "LISTEN_ADDRESS": "listen_address",
    "LISTEN_PORT": "listen_port",
    "LOG_LEVEL": "log_level",
}
