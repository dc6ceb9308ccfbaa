"""Durable record of an environment's control-plane instances.

The record lives at the well-known key ``provider-state`` in the
environment's storage, encoded as a YAML document::

    state-instances:
    - i-3a6d9f0c
    characteristics:
    - arch: amd64
      mem: 1740
      cpu-cores: 1
      cpu-power: 100
      root-disk: 8192

This module is the only writer of that key.
"""

from __future__ import annotations

import logging

import yaml
from pydantic import ValidationError

from fleetcore.core.errors import AlreadyBootstrapped, CorruptState, NotBootstrapped
from fleetcore.core.storage import Storage
from fleetcore.models.state import BootstrapState

logger = logging.getLogger(__name__)

STATE_KEY = "provider-state"


def _encode(state: BootstrapState) -> bytes:
    doc = {
        "state-instances": list(state.state_instances),
        "characteristics": [
            {k.replace("_", "-"): v for k, v in hc.model_dump(exclude_none=True).items()}
            for hc in state.characteristics
        ],
    }
    return yaml.safe_dump(doc, default_flow_style=False, sort_keys=False).encode("utf-8")


def _decode(data: bytes) -> BootstrapState:
    try:
        doc = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise CorruptState(f"cannot parse bootstrap state: {exc}") from exc
    if not isinstance(doc, dict):
        raise CorruptState("bootstrap state is not a mapping")
    try:
        return BootstrapState(
            state_instances=doc.get("state-instances") or [],
            characteristics=[
                {k.replace("-", "_"): v for k, v in hc.items()}
                for hc in doc.get("characteristics") or []
            ],
        )
    except (ValidationError, AttributeError) as exc:
        raise CorruptState(f"invalid bootstrap state: {exc}") from exc


class BootstrapStateStore:
    """Save, load and remove the bootstrap record of one environment.

    Parameters
    ----------
    storage:
        The environment's object storage.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def save(self, state: BootstrapState) -> None:
        """Write the record, replacing any previous one."""
        self._storage.put(STATE_KEY, _encode(state))
        logger.info("Saved bootstrap state (%d instances)", len(state.state_instances))

    def save_new(self, state: BootstrapState) -> None:
        """Write the record only if none exists.

        Raises
        ------
        AlreadyBootstrapped
            If a record is already present (another bootstrap won).
        """
        if not self._storage.put_if_absent(STATE_KEY, _encode(state)):
            raise AlreadyBootstrapped("environment is already bootstrapped")
        logger.info("Created bootstrap state (%d instances)", len(state.state_instances))

    def load(self) -> BootstrapState:
        """Read the record.

        Raises
        ------
        NotBootstrapped
            If no record exists.
        CorruptState
            If the record cannot be decoded or is not index-aligned.
        """
        try:
            data = self._storage.get(STATE_KEY)
        except KeyError:
            raise NotBootstrapped("environment is not bootstrapped") from None
        return _decode(data)

    def exists(self) -> bool:
        try:
            self._storage.get(STATE_KEY)
        except KeyError:
            return False
        return True

    def remove(self) -> None:
        """Delete the record.  Idempotent."""
        self._storage.remove(STATE_KEY)
        logger.info("Removed bootstrap state")
