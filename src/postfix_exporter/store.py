"""
Durable storage of the event counters and of the last classified log position.

The state file is a flat TOML table::

    last_identity = "2049:131090"
    last_byte_offset = 48213
    messages_received = 12
    ...

It is replaced atomically on every commit, so the position and the counters on disk
always belong to the same cycle. Deleting the file resets every counter to zero.
"""
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Mapping, MutableMapping, Optional

import attrs
import toml

from postfix_exporter.catalog import CounterKey
from postfix_exporter.exceptions import StateCorrupt, StateWriteFailed
from postfix_exporter.position import LogIdentity, LogPosition

__all__ = [
    "U64_MAX",
    "CounterState",
    "CounterStore",
    "parse_state",
    "dump_state",
]

logger = logging.getLogger(__name__)

U64_MAX = 2**64 - 1

IDENTITY_KEY = "last_identity"
OFFSET_KEY = "last_byte_offset"


def _zero_counters() -> Dict[CounterKey, int]:
    return {key: 0 for key in CounterKey}


@attrs.define
class CounterState:
    position: Optional[LogPosition] = None
    counters: Dict[CounterKey, int] = attrs.field(factory=_zero_counters)

    @property
    def fresh(self) -> bool:
        """True when no valid log position has been persisted yet."""
        return self.position is None


def dump_state(state: CounterState) -> str:
    record: MutableMapping[str, object] = {
        IDENTITY_KEY: str(state.position.identity) if state.position else "",
        OFFSET_KEY: state.position.byte_offset if state.position else 0,
    }
    for key in CounterKey:
        record[key.value] = state.counters.get(key, 0)
    return toml.dumps(record)


def parse_state(text: str) -> CounterState:
    """
    Parse the content of a state file.

    Counter keys absent from the file start at zero. Unknown keys are ignored.

    Raises
    ------
    StateCorrupt
        If the content is not valid TOML or holds invalid values

    """
    try:
        record = toml.loads(text)
    except toml.TomlDecodeError as e:
        raise StateCorrupt(f"Invalid TOML: {e}") from e

    identity_value = record.get(IDENTITY_KEY)
    offset_value = record.get(OFFSET_KEY)
    if not isinstance(identity_value, str):
        raise StateCorrupt(f"Missing or invalid {IDENTITY_KEY}")
    if not _is_counter_value(offset_value):
        raise StateCorrupt(f"Missing or invalid {OFFSET_KEY}")

    position = None
    if identity_value:
        try:
            identity = LogIdentity.parse(identity_value)
        except ValueError as e:
            raise StateCorrupt(str(e)) from e
        position = LogPosition(identity=identity, byte_offset=offset_value)

    counters = _zero_counters()
    for key in CounterKey:
        if key.value not in record:
            continue
        value = record[key.value]
        if not _is_counter_value(value):
            raise StateCorrupt(f"Invalid value for {key.value}: {value!r}")
        counters[key] = value

    known = {IDENTITY_KEY, OFFSET_KEY} | {key.value for key in CounterKey}
    unknown = set(record) - known
    if unknown:
        logger.warning(f"Ignoring unknown keys in state file: {', '.join(sorted(unknown))}")

    return CounterState(position=position, counters=counters)


def _is_counter_value(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= U64_MAX


@attrs.define
class CounterStore:
    """
    Owner of the ``CounterState`` of one log source.

    A cycle calls ``load``, then ``apply`` with the increments of the classified lines,
    then ``commit`` with the position reached.
    """

    path: Path = attrs.field(converter=Path)
    state: CounterState = attrs.field(factory=CounterState)

    def load(self) -> CounterState:
        """
        Load the persisted state. An absent or corrupt state file yields a zero-valued
        state, and corruption is reported as a warning.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"No state file at {self.path}, starting from zero")
            self.state = CounterState()
            return self.state
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cannot read state file {self.path}, counters reset to zero: {e}")
            self.state = CounterState()
            return self.state

        try:
            self.state = parse_state(text)
        except StateCorrupt as e:
            logger.warning(f"Corrupt state file {self.path}, counters reset to zero: {e}")
            self.state = CounterState()
        return self.state

    def apply(self, increments: Mapping[CounterKey, int]) -> None:
        counters = self.state.counters
        for key, increment in increments.items():
            if increment < 0:
                raise ValueError(f"Negative increment for {key.value}: {increment}")
            counters[key] = min(counters.get(key, 0) + increment, U64_MAX)

    def commit(self, position: Optional[LogPosition]) -> None:
        """
        Persist the counters together with ``position``.

        Raises
        ------
        StateWriteFailed
            If the state file could not be written. The file on disk is unchanged.

        """
        state = attrs.evolve(self.state, position=position)
        content = dump_state(state)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as fp:
                tmp_name = fp.name
                fp.write(content)
                fp.flush()
                os.fsync(fp.fileno())
            os.replace(tmp_name, self.path)
            self.state = state
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error(f"Could not write state file {self.path}: {e}")
            raise StateWriteFailed(f"Could not write state file {self.path}: {e}") from e
