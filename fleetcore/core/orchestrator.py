"""Provisioning orchestrator — the central coordinator for one environment.

The ProvisioningOrchestrator wires together the HardwareSelector,
MetadataResolver, AddressClassifier and BootstrapStateStore around a cloud
backend.

Environment lifecycle::

    unbootstrapped --bootstrap()--> bootstrapping --> bootstrapped
    bootstrapped --destroy(all controllers)--> unbootstrapped

Every machine additionally walks the MachineTracker sub-flow.  Bootstrap
and destroy are serialised per environment; start_instance only reads the
bootstrap record and may run concurrently.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from fleetcore.backends.base import CloudBackend, CredentialNotifier, IndexFetcher
from fleetcore.backends.http_index import CompositeFetcher
from fleetcore.core.address_classifier import classify_all
from fleetcore.core.bootstrap_store import STATE_KEY, BootstrapStateStore
from fleetcore.core.cloudinit import CloudConfig, bootstrap_config, machine_config
from fleetcore.core.errors import (
    AlreadyBootstrapped,
    AuthorizationFailed,
    NotBootstrapped,
    ProvisioningError,
    Timeout,
)
from fleetcore.core.hardware_selector import select
from fleetcore.core.machine_tracker import MachineTracker
from fleetcore.core.metadata_resolver import MetadataResolver, image_sources, tools_sources
from fleetcore.core.retry import DEFAULT_POLICY, Deadline, RetryPolicy, call_external
from fleetcore.core.storage import Storage
from fleetcore.models.config import EnvironmentConfig
from fleetcore.models.hardware import Constraint
from fleetcore.models.metadata import LookupParams, ToolsSpec
from fleetcore.models.state import (
    BootstrapState,
    EnvironmentState,
    InstanceId,
    InstanceRecord,
    MachineState,
)

logger = logging.getLogger(__name__)

BOOTSTRAP_MACHINE_ID = "0"


class EnvironmentLocks:
    """Per-environment mutexes.

    Orchestrators that share one ``EnvironmentLocks`` serialise bootstrap
    and destroy for environments of the same name.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(name, threading.Lock())


class ProvisioningOrchestrator:
    """Bootstraps an environment and starts machines in it.

    Parameters
    ----------
    env:
        Environment configuration (region, endpoint, series, buckets).
    backend:
        The cloud backend instances are launched on.
    storage:
        The environment's control-bucket storage.  Holds the bootstrap
        record and the environment-local metadata indexes.
    fetcher:
        Metadata index fetcher.  Defaults to storage for control-bucket
        URLs and HTTP for everything else.
    notifier:
        Told when the backend rejects the cloud credential.
    policy:
        Retry policy for every external call.
    locks:
        Shared per-environment locks.  Each orchestrator gets its own when
        omitted.
    operation_timeout:
        Default budget in seconds for operations called without ``timeout``.
    """

    def __init__(
        self,
        env: EnvironmentConfig,
        backend: CloudBackend,
        storage: Storage,
        *,
        fetcher: IndexFetcher | None = None,
        notifier: CredentialNotifier | None = None,
        policy: RetryPolicy = DEFAULT_POLICY,
        locks: EnvironmentLocks | None = None,
        operation_timeout: float | None = None,
    ) -> None:
        self.env = env
        self.backend = backend
        self.storage = storage
        self.state_store = BootstrapStateStore(storage)
        self._owned_fetcher = None if fetcher is not None else CompositeFetcher(storage)
        self.resolver = MetadataResolver(fetcher or self._owned_fetcher, policy)
        self.tracker = MachineTracker()
        self._notifier = notifier
        self._policy = policy
        self._lock = (locks or EnvironmentLocks()).get(env.name)
        self._default_timeout = operation_timeout
        self._bootstrapping = False
        self._controller: InstanceRecord | None = None

    # ------------------------------------------------------------------
    # Environment state
    # ------------------------------------------------------------------

    @property
    def state(self) -> EnvironmentState:
        if self._bootstrapping:
            return EnvironmentState.BOOTSTRAPPING
        if self.state_store.exists():
            return EnvironmentState.BOOTSTRAPPED
        return EnvironmentState.UNBOOTSTRAPPED

    @property
    def controller(self) -> InstanceRecord | None:
        """The bootstrap instance, if it was started by this orchestrator."""
        return self._controller

    def bootstrap_state(self) -> BootstrapState:
        return self.state_store.load()

    def machine_state(self, machine_id: str) -> MachineState | None:
        return self.tracker.state(machine_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def bootstrap(
        self, constraint: Constraint | None = None, *, timeout: float | None = None
    ) -> InstanceRecord:
        """Start the first control-plane instance and record it.

        Raises
        ------
        AlreadyBootstrapped
            If the environment already has a bootstrap record, or a
            concurrent bootstrap recorded one first.
        """
        constraint = constraint or Constraint()
        deadline = self._deadline(timeout)
        self._acquire(deadline, "bootstrap")
        record: InstanceRecord | None = None
        try:
            if self.state_store.exists():
                raise AlreadyBootstrapped(
                    f"environment {self.env.name!r} is already bootstrapped"
                )
            self._bootstrapping = True
            logger.info("Bootstrapping environment %s (%s)", self.env.name, constraint)
            state_url = self.storage.url(STATE_KEY)
            record = self._provision(
                BOOTSTRAP_MACHINE_ID,
                constraint,
                self.env.default_series,
                deadline,
                lambda tools: bootstrap_config(
                    tools, state_url, constraint, self.env.agent_binary
                ),
                is_controller=True,
            )
            self.state_store.save_new(
                BootstrapState(
                    state_instances=[record.instance_id],
                    characteristics=[record.hardware],
                )
            )
        except Exception as exc:
            self.tracker.fail(BOOTSTRAP_MACHINE_ID, str(exc))
            if record is not None:
                self._terminate_quietly(record.instance_id)
            raise
        finally:
            self._bootstrapping = False
            self._lock.release()

        self.tracker.transition(BOOTSTRAP_MACHINE_ID, MachineState.READY)
        self._controller = record
        logger.info(
            "Environment %s bootstrapped on %s (%s)",
            self.env.name, record.instance_id, record.hardware,
        )
        return record

    def start_instance(
        self,
        machine_id: str,
        nonce: str,
        constraint: Constraint | None = None,
        *,
        series: str | None = None,
        timeout: float | None = None,
    ) -> InstanceRecord:
        """Start a regular machine.  Never modifies the bootstrap record.

        Raises
        ------
        NotBootstrapped
            If the environment has not been bootstrapped.
        """
        constraint = constraint or Constraint()
        deadline = self._deadline(timeout)
        self.state_store.load()
        record = self._provision(
            machine_id,
            constraint,
            series or self.env.default_series,
            deadline,
            lambda tools: machine_config(tools, machine_id, nonce, self.env.agent_binary),
            is_controller=False,
        )
        self.tracker.transition(machine_id, MachineState.READY)
        logger.info("Started machine %s on %s", machine_id, record.instance_id)
        return record

    def destroy(
        self, instance_ids: Sequence[InstanceId], *, timeout: float | None = None
    ) -> None:
        """Terminate instances; forget the bootstrap record once every
        control-plane instance is among them."""
        deadline = self._deadline(timeout)
        self._acquire(deadline, "destroy")
        try:
            try:
                state: BootstrapState | None = self.state_store.load()
            except NotBootstrapped:
                state = None
            ids = list(instance_ids)
            if ids:
                self._call(
                    self.backend.terminate_instances, ids,
                    deadline=deadline, what="terminate instances",
                )
            if state is not None and set(state.state_instances) <= set(ids):
                self.state_store.remove()
                self.tracker.forget(BOOTSTRAP_MACHINE_ID)
                self._controller = None
                logger.info("Environment %s destroyed", self.env.name)
        finally:
            self._lock.release()

    def instance_status(self, instance_id: InstanceId, *, timeout: float | None = None) -> str:
        return self._call(
            self.backend.instance_state, instance_id,
            deadline=self._deadline(timeout), what=f"status of {instance_id}",
        )

    def close(self) -> None:
        """Release the index fetcher's HTTP client if this orchestrator made it."""
        if self._owned_fetcher is not None:
            self._owned_fetcher.close()

    def __enter__(self) -> ProvisioningOrchestrator:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _deadline(self, timeout: float | None) -> Deadline:
        return Deadline(timeout if timeout is not None else self._default_timeout)

    def _acquire(self, deadline: Deadline, what: str) -> None:
        remaining = deadline.remaining()
        if not self._lock.acquire(timeout=-1 if remaining is None else remaining):
            raise Timeout(f"timed out waiting for the environment lock to {what}")

    def _call(self, fn: Callable, *args, deadline: Deadline, what: str, **options):
        try:
            return call_external(
                fn, *args, deadline=deadline, policy=self._policy, what=what, **options
            )
        except AuthorizationFailed as exc:
            self._invalidate_credential(str(exc))
            raise

    def _invalidate_credential(self, reason: str) -> None:
        if self._notifier is None:
            logger.warning("Cloud credential rejected and no notifier configured: %s", reason)
            return
        try:
            self._notifier.invalidate(reason)
        except Exception:
            logger.exception("Failed to report invalid credential")

    def _terminate_quietly(self, instance_id: InstanceId) -> None:
        try:
            self._call(
                self.backend.terminate_instances, [instance_id],
                deadline=Deadline(self._policy.call_timeout),
                what=f"terminate {instance_id}",
            )
        except ProvisioningError:
            logger.exception("Failed to terminate %s after a failed launch", instance_id)

    def _reap_launch(self, launched: tuple[InstanceId, list[str]]) -> None:
        """Terminate an instance whose launch finished after we gave up on it."""
        self._terminate_quietly(launched[0])

    def _pick_image(self, series: str, arch: str, deadline: Deadline) -> str:
        params = LookupParams(
            series=series,
            arch=arch,
            region=self.env.region,
            endpoint=self.env.endpoint,
            sources=image_sources(self.env, self.storage),
        )
        return self.resolver.validate(params, deadline)[0]

    def _pick_tools(self, series: str, arch: str, deadline: Deadline) -> ToolsSpec:
        return self.resolver.find_tools(
            series, arch, tools_sources(self.env, self.storage),
            version=self.env.tools_version, deadline=deadline,
        )[0]

    def _provision(
        self,
        machine_id: str,
        constraint: Constraint,
        series: str,
        deadline: Deadline,
        build_config: Callable[[ToolsSpec], CloudConfig],
        *,
        is_controller: bool,
    ) -> InstanceRecord:
        """Select hardware, pick image and tools, launch, classify addresses.

        Leaves the machine in ``addresses_resolved`` on success and in
        ``failed`` on error.
        """
        self.tracker.request(machine_id)
        try:
            catalog = self._call(
                self.backend.list_instance_types, self.env.region,
                deadline=deadline, what="list instance types",
            )
            instance_type, hardware = select(constraint, catalog)
            self.tracker.transition(machine_id, MachineState.HARDWARE_SELECTED, instance_type)

            image_id = self._pick_image(series, hardware.arch, deadline)
            tools = self._pick_tools(series, hardware.arch, deadline)
            user_data = build_config(tools).user_data()

            instance_id, raw_addresses = self._call(
                self.backend.launch_instance, instance_type, image_id, user_data,
                deadline=deadline, what=f"launch machine {machine_id}",
                idempotent=False, on_abandoned=self._reap_launch,
            )
            self.tracker.transition(machine_id, MachineState.LAUNCHED, instance_id)

            addresses = classify_all(raw_addresses, self.backend.scope_table)
            self.tracker.transition(machine_id, MachineState.ADDRESSES_RESOLVED)
        except Exception as exc:
            self.tracker.fail(machine_id, str(exc))
            raise

        return InstanceRecord(
            instance_id=instance_id,
            machine_id=machine_id,
            instance_type=instance_type,
            image_id=image_id,
            hardware=hardware,
            addresses=addresses,
            is_controller=is_controller,
        )
