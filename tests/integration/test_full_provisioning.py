"""Integration test: full environment lifecycle on directory-backed storage.

Bootstraps an environment, starts machines under several constraints,
checks the durable record from a second orchestrator (as another process
would), then destroys everything and bootstraps again.
"""

from __future__ import annotations

import threading

import pytest

from fleetcore.backends.base import LoggingNotifier
from fleetcore.backends.fake import FakeBackend, publish_images, upload_fake_tools
from fleetcore.core.cloudinit import CloudConfig
from fleetcore.core.errors import AlreadyBootstrapped, NotBootstrapped
from fleetcore.core.metadata_resolver import image_sources, tools_sources
from fleetcore.core.orchestrator import ProvisioningOrchestrator
from fleetcore.core.storage import LocalFileStorage
from fleetcore.models.addresses import NetworkScope
from fleetcore.models.config import EnvironmentConfig
from fleetcore.models.hardware import Constraint
from fleetcore.models.state import EnvironmentState, MachineState


@pytest.fixture
def bucket(tmp_dir) -> LocalFileStorage:
    storage = LocalFileStorage(tmp_dir / "buckets", "test-bucket")
    publish_images(storage)
    upload_fake_tools(storage, version="1.14.0")
    upload_fake_tools(storage, version="1.16.0")
    return storage


class TestFullProvisioning:
    def test_lifecycle(self, env, bucket, fast_policy):
        backend = FakeBackend()
        notifier = LoggingNotifier()
        orch = ProvisioningOrchestrator(
            env, backend, bucket, notifier=notifier, policy=fast_policy
        )

        # Sources
        assert len(image_sources(env, bucket)) == 2
        assert len(tools_sources(env, bucket)) == 1

        # Bootstrap
        controller = orch.bootstrap()
        assert orch.state is EnvironmentState.BOOTSTRAPPED
        cfg = CloudConfig.from_user_data(backend.instance(controller.instance_id).user_data)
        assert any("1.16.0-precise-amd64" in line for line in cfg.runcmd)

        # Another orchestrator sees the same record
        other = ProvisioningOrchestrator(env, FakeBackend(), bucket, policy=fast_policy)
        assert other.state is EnvironmentState.BOOTSTRAPPED
        assert other.bootstrap_state().state_instances == [controller.instance_id]
        with pytest.raises(AlreadyBootstrapped):
            other.bootstrap()

        # Machines, started concurrently
        constraints = {
            "1": Constraint.parse("mem=1024"),
            "2": Constraint.parse("cpu-cores=2"),
            "3": Constraint.parse("arch=i386 mem=2G"),
        }
        records = {}
        lock = threading.Lock()

        def _start(machine_id: str) -> None:
            record = orch.start_instance(machine_id, f"nonce-{machine_id}", constraints[machine_id])
            with lock:
                records[machine_id] = record

        threads = [threading.Thread(target=_start, args=(m,)) for m in constraints]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert {m: r.instance_type for m, r in records.items()} == {
            "1": "m1.small",
            "2": "c1.medium",
            "3": "m1.medium",
        }
        assert records["3"].image_id == "ami-00000034"
        for machine_id in constraints:
            assert orch.machine_state(machine_id) is MachineState.READY
        for record in records.values():
            scopes = [a.scope for a in record.addresses]
            assert scopes.count(NetworkScope.PUBLIC) == 2
            assert scopes.count(NetworkScope.CLOUD_LOCAL) == 2
        assert orch.bootstrap_state().state_instances == [controller.instance_id]

        # Destroy everything
        all_ids = [controller.instance_id] + [r.instance_id for r in records.values()]
        orch.destroy(all_ids)
        assert backend.live_instances() == []
        with pytest.raises(NotBootstrapped):
            other.bootstrap_state()
        with pytest.raises(NotBootstrapped):
            orch.start_instance("4", "n")

        # And again
        again = orch.bootstrap()
        assert orch.bootstrap_state().state_instances == [again.instance_id]
        assert notifier.reasons == []

    def test_pinned_tools_version(self, bucket, fast_policy):
        env = EnvironmentConfig(tools_version="1.14.0")
        backend = FakeBackend()
        orch = ProvisioningOrchestrator(env, backend, bucket, policy=fast_policy)
        record = orch.bootstrap()
        cfg = CloudConfig.from_user_data(backend.instance(record.instance_id).user_data)
        assert any("1.14.0-precise-amd64" in line for line in cfg.runcmd)
