"""Hardware constraint, characteristics and catalog models.

Constraints are partial: every unset field is a wildcard.  Characteristics
are the resolved values of the instance type that was actually selected.

Both support the ``key=value`` string form used on the command line::

    arch=amd64 mem=1740M cpu-cores=1 cpu-power=100 root-disk=8192M
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# key in string form -> model field name
_FIELD_NAMES: dict[str, str] = {
    "arch": "arch",
    "mem": "mem",
    "cpu-cores": "cpu_cores",
    "cpu-power": "cpu_power",
    "root-disk": "root_disk",
}

# Size suffixes, expressed in megabytes.
_SIZE_MULTIPLIERS: dict[str, int] = {
    "M": 1,
    "G": 1024,
    "T": 1024 * 1024,
}

_SIZED_FIELDS = {"mem", "root_disk"}


def _parse_size(value: str) -> int:
    """Parse ``1740``, ``1740M`` or ``2G`` into megabytes."""
    multiplier = 1
    if value and value[-1].upper() in _SIZE_MULTIPLIERS:
        multiplier = _SIZE_MULTIPLIERS[value[-1].upper()]
        value = value[:-1]
    if not value.isdigit():
        raise ValueError("must be a non-negative number with optional M/G/T suffix")
    return int(value) * multiplier


def _parse_count(value: str) -> int:
    if not value.isdigit():
        raise ValueError("must be a non-negative integer")
    return int(value)


def _parse_pairs(text: str) -> dict[str, str | int]:
    """Split ``key=value`` words into a dict of model field values."""
    values: dict[str, str | int] = {}
    for word in text.split():
        key, sep, raw = word.partition("=")
        if not sep:
            raise ValueError(f"malformed constraint {word!r}: expected key=value")
        field = _FIELD_NAMES.get(key)
        if field is None:
            raise ValueError(f"unknown constraint {key!r}")
        if field in values:
            raise ValueError(f"bad {key!r} constraint: already set")
        try:
            if field == "arch":
                if not raw:
                    raise ValueError("must not be empty")
                values[field] = raw
            elif field in _SIZED_FIELDS:
                values[field] = _parse_size(raw)
            else:
                values[field] = _parse_count(raw)
        except ValueError as exc:
            raise ValueError(f"bad {key!r} constraint {raw!r}: {exc}") from exc
    return values


def _render(model: BaseModel) -> str:
    words = []
    for key, field in _FIELD_NAMES.items():
        value = getattr(model, field)
        if value is None:
            continue
        if field in _SIZED_FIELDS:
            value = f"{value}M"
        words.append(f"{key}={value}")
    return " ".join(words)


class Constraint(BaseModel):
    """Partial hardware requirements submitted with a start request."""

    model_config = ConfigDict(frozen=True)

    arch: str | None = None
    mem: int | None = None  # MB
    cpu_cores: int | None = None
    cpu_power: int | None = None  # relative units, 100 = one reference core
    root_disk: int | None = None  # MB

    @classmethod
    def parse(cls, text: str) -> Constraint:
        """Build a Constraint from its ``key=value`` string form."""
        return cls(**_parse_pairs(text))

    def __str__(self) -> str:
        return _render(self)


class HardwareCharacteristics(BaseModel):
    """Fully resolved hardware of one provisioned instance."""

    model_config = ConfigDict(frozen=True)

    arch: str
    mem: int
    cpu_cores: int
    cpu_power: int
    root_disk: int | None = None

    @classmethod
    def parse(cls, text: str) -> HardwareCharacteristics:
        """Build characteristics from the ``key=value`` string form.

        ``arch``, ``mem``, ``cpu-cores`` and ``cpu-power`` are required.
        """
        values = _parse_pairs(text)
        missing = [
            key for key, field in _FIELD_NAMES.items()
            if field != "root_disk" and field not in values
        ]
        if missing:
            raise ValueError(f"hardware characteristics missing {', '.join(missing)}")
        return cls(**values)

    def __str__(self) -> str:
        return _render(self)


class InstanceType(BaseModel):
    """One entry of a backend's instance-type catalog.

    ``cost`` is a backend-supplied relative unit.  When a backend does not
    publish costs, ``cpu_power`` stands in for it.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    arches: list[str]
    mem: int
    cpu_cores: int
    cpu_power: int
    root_disk: int | None = None
    cost: int | None = None

    @property
    def effective_cost(self) -> int:
        return self.cost if self.cost is not None else self.cpu_power
