"""In-process fake cloud backend.

``FakeBackend`` behaves like a tiny cloud: it hands out instance ids,
reports four endpoints per instance (public and cloud-local hostnames and
IPv4 addresses), keeps the user data it was given, and can be told to fail
the next N calls of a method.  The ``local`` CLI environment and the test
suite both run against it.

``publish_images`` and ``upload_fake_tools`` write metadata indexes into a
storage so the resolver has something to find.
"""

from __future__ import annotations

import hashlib
import itertools
import json
import logging
import threading
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict

from fleetcore.core.errors import ProvisioningError
from fleetcore.core.storage import Storage
from fleetcore.models.addresses import NetworkScope, ScopeRule, ScopeTable
from fleetcore.models.hardware import InstanceType
from fleetcore.models.metadata import INDEX_FORMAT, ImageSpec, ToolsSpec
from fleetcore.models.state import InstanceId

logger = logging.getLogger(__name__)

TESTING_SCOPE_TABLE = ScopeTable(
    name="testing",
    rules=[
        ScopeRule(match="suffix", pattern=".testing.invalid", scope=NetworkScope.PUBLIC),
        ScopeRule(match="suffix", pattern=".internal.invalid", scope=NetworkScope.CLOUD_LOCAL),
        ScopeRule(pattern="8.0.0.0/8", scope=NetworkScope.PUBLIC),
        ScopeRule(pattern="127.0.0.0/8", scope=NetworkScope.CLOUD_LOCAL),
    ],
)

TEST_INSTANCE_TYPES: list[InstanceType] = [
    InstanceType(name="m1.small", arches=["amd64", "i386"], mem=1740,
                 cpu_cores=1, cpu_power=100, root_disk=8192, cost=60),
    InstanceType(name="m1.medium", arches=["amd64", "i386"], mem=3840,
                 cpu_cores=1, cpu_power=200, root_disk=8192, cost=120),
    InstanceType(name="c1.medium", arches=["amd64", "i386"], mem=1740,
                 cpu_cores=2, cpu_power=500, root_disk=8192, cost=145),
    InstanceType(name="m1.large", arches=["amd64"], mem=7680,
                 cpu_cores=2, cpu_power=400, root_disk=8192, cost=240),
    InstanceType(name="m1.xlarge", arches=["amd64"], mem=15360,
                 cpu_cores=4, cpu_power=800, root_disk=8192, cost=480),
    InstanceType(name="cc1.4xlarge", arches=["amd64"], mem=23552,
                 cpu_cores=8, cpu_power=3350, root_disk=8192, cost=1300),
]

TEST_IMAGES: list[ImageSpec] = [
    ImageSpec(id="ami-00000033", series="precise", arch="amd64", region="test"),
    ImageSpec(id="ami-00000034", series="precise", arch="i386", region="test"),
    ImageSpec(id="ami-00000099", series="quantal", arch="amd64", region="test"),
]


class FakeInstance(BaseModel):
    """What the fake cloud knows about one instance."""

    model_config = ConfigDict(frozen=True)

    instance_id: InstanceId
    instance_type: str
    image_id: str
    user_data: bytes
    addresses: list[str]
    state: str


class FakeBackend:
    """Thread-safe in-memory cloud.

    Parameters
    ----------
    catalog:
        Instance types per region.  Every region gets ``TEST_INSTANCE_TYPES``
        when omitted.
    scope_table:
        Address scope rules for this cloud's endpoints.
    """

    def __init__(
        self,
        catalog: dict[str, list[InstanceType]] | None = None,
        scope_table: ScopeTable = TESTING_SCOPE_TABLE,
    ) -> None:
        self._catalog = catalog
        self.scope_table = scope_table
        self.initial_state = "running"
        self._instances: dict[InstanceId, FakeInstance] = {}
        self._counter = itertools.count(1)
        self._failures: dict[str, list[Exception]] = {}
        self._lock = threading.Lock()
        self.calls: list[str] = []

    # ------------------------------------------------------------------
    # Failure injection
    # ------------------------------------------------------------------

    def fail_next(self, method: str, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls of ``method`` raise ``error``."""
        with self._lock:
            self._failures.setdefault(method, []).extend([error] * times)

    def _enter(self, method: str) -> None:
        with self._lock:
            self.calls.append(method)
            pending = self._failures.get(method)
            error = pending.pop(0) if pending else None
        if error is not None:
            logger.debug("FakeBackend.%s failing with %r", method, error)
            raise error

    # ------------------------------------------------------------------
    # CloudBackend protocol
    # ------------------------------------------------------------------

    def launch_instance(
        self, instance_type: str, image_id: str, user_data: bytes
    ) -> tuple[InstanceId, list[str]]:
        self._enter("launch_instance")
        with self._lock:
            n = next(self._counter)
            instance_id = f"i-{hashlib.sha256(str(n).encode()).hexdigest()[:8]}{n}"
            addresses = [
                f"{instance_id}.testing.invalid",
                f"{instance_id}.internal.invalid",
                f"8.0.0.{n % 255}",
                f"127.0.0.{n % 255}",
            ]
            self._instances[instance_id] = FakeInstance(
                instance_id=instance_id,
                instance_type=instance_type,
                image_id=image_id,
                user_data=user_data,
                addresses=addresses,
                state=self.initial_state,
            )
        logger.info("FakeBackend launched %s (%s, %s)", instance_id, instance_type, image_id)
        return instance_id, list(addresses)

    def terminate_instances(self, instance_ids: Sequence[InstanceId]) -> None:
        self._enter("terminate_instances")
        with self._lock:
            for instance_id in instance_ids:
                inst = self._instances.get(instance_id)
                if inst is not None:
                    self._instances[instance_id] = inst.model_copy(
                        update={"state": "terminated"}
                    )

    def list_instance_types(self, region: str) -> list[InstanceType]:
        self._enter("list_instance_types")
        if self._catalog is None:
            return list(TEST_INSTANCE_TYPES)
        if region not in self._catalog:
            raise ProvisioningError(f"unknown region {region!r}")
        return list(self._catalog[region])

    def instance_state(self, instance_id: InstanceId) -> str:
        self._enter("instance_state")
        with self._lock:
            inst = self._instances.get(instance_id)
        if inst is None:
            raise ProvisioningError(f"instance {instance_id} not found")
        return inst.state

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def instance(self, instance_id: InstanceId) -> FakeInstance | None:
        with self._lock:
            return self._instances.get(instance_id)

    def all_instances(self) -> list[FakeInstance]:
        with self._lock:
            return list(self._instances.values())

    def live_instances(self) -> list[FakeInstance]:
        with self._lock:
            return [i for i in self._instances.values() if i.state != "terminated"]


# ---------------------------------------------------------------------------
# Metadata publishing
# ---------------------------------------------------------------------------


def _index(products: Iterable[BaseModel]) -> bytes:
    doc = {
        "format": INDEX_FORMAT,
        "products": [p.model_dump(mode="json", exclude_none=True) for p in products],
    }
    return json.dumps(doc, indent=2, sort_keys=True).encode("utf-8")


def publish_images(storage: Storage, images: Iterable[ImageSpec] = TEST_IMAGES) -> str:
    """Write an image index into ``storage``.  Returns its key."""
    key = "images/index.json"
    storage.put(key, _index(images))
    return key


def upload_fake_tools(
    storage: Storage,
    version: str = "1.16.0",
    series: Sequence[str] = ("precise", "quantal"),
    arches: Sequence[str] = ("amd64", "i386"),
) -> list[ToolsSpec]:
    """Write fake tools tarballs and their index into ``storage``.

    Existing index entries for other versions are kept.
    """
    key = "tools/index.json"
    existing: list[ToolsSpec] = []
    try:
        doc = json.loads(storage.get(key))
        existing = [ToolsSpec.model_validate(p) for p in doc.get("products", [])]
    except KeyError:
        pass

    uploaded = []
    for s in series:
        for arch in arches:
            name = f"tools/releases/fleet-{version}-{s}-{arch}.tgz"
            data = f"fleet tools {version}-{s}-{arch}".encode("utf-8")
            storage.put(name, data)
            uploaded.append(
                ToolsSpec(
                    version=version,
                    series=s,
                    arch=arch,
                    url=storage.url(name),
                    sha256=hashlib.sha256(data).hexdigest(),
                    size=len(data),
                )
            )
    replaced = {t.binary_version for t in uploaded}
    storage.put(key, _index([t for t in existing if t.binary_version not in replaced] + uploaded))
    return uploaded
