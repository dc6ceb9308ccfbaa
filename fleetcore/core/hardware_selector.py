"""Match hardware constraints against a backend's instance-type catalog.

Selection rules:

1. An entry must support the requested architecture (if any).
2. ``mem``, ``cpu_cores``, ``cpu_power`` and ``root_disk`` are minimums.
3. Among survivors the cheapest entry wins; ties go to the smallest
   memory, then to the name so the result is deterministic.

The returned characteristics are those of the selected entry, not the
constraint.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from fleetcore.core.errors import NoMatchingHardware
from fleetcore.models.hardware import Constraint, HardwareCharacteristics, InstanceType

logger = logging.getLogger(__name__)

# Used when the constraint leaves arch open and an entry supports several.
PREFERRED_ARCHES: tuple[str, ...] = ("amd64", "arm64", "i386", "armhf")

_MINIMUM_FIELDS = ("mem", "cpu_cores", "cpu_power", "root_disk")


def _satisfies(entry: InstanceType, constraint: Constraint) -> bool:
    if constraint.arch is not None and constraint.arch not in entry.arches:
        return False
    for field in _MINIMUM_FIELDS:
        wanted = getattr(constraint, field)
        if wanted is None:
            continue
        have = getattr(entry, field)
        if have is None or have < wanted:
            return False
    return True


def _pick_arch(entry: InstanceType, constraint: Constraint) -> str:
    if constraint.arch is not None:
        return constraint.arch
    for arch in PREFERRED_ARCHES:
        if arch in entry.arches:
            return arch
    return sorted(entry.arches)[0]


def select(
    constraint: Constraint, catalog: Sequence[InstanceType]
) -> tuple[str, HardwareCharacteristics]:
    """Pick the cheapest catalog entry satisfying ``constraint``.

    Raises
    ------
    NoMatchingHardware
        If no entry satisfies every specified field.
    """
    candidates = [
        entry for entry in catalog if entry.arches and _satisfies(entry, constraint)
    ]
    if not candidates:
        raise NoMatchingHardware(
            f"no instance types in a catalog of {len(catalog)} "
            f"match constraints {str(constraint) or '(none)'!r}"
        )

    best = min(candidates, key=lambda e: (e.effective_cost, e.mem, e.name))
    hardware = HardwareCharacteristics(
        arch=_pick_arch(best, constraint),
        mem=best.mem,
        cpu_cores=best.cpu_cores,
        cpu_power=best.cpu_power,
        root_disk=best.root_disk,
    )
    logger.debug(
        "Selected %s (%s) for constraints %r out of %d candidates",
        best.name, hardware, str(constraint), len(candidates),
    )
    return best.name, hardware


class HardwareSelector:
    """Selection bound to one explicitly supplied catalog.

    Parameters
    ----------
    catalog:
        The instance types available in one region.
    """

    def __init__(self, catalog: Sequence[InstanceType]) -> None:
        self._catalog = list(catalog)

    @property
    def catalog(self) -> list[InstanceType]:
        return list(self._catalog)

    def select(self, constraint: Constraint) -> tuple[str, HardwareCharacteristics]:
        return select(constraint, self._catalog)
