"""Cloud-init content for provisioned instances.

Which packages and scripts an instance gets depends on its role:

- every instance installs ``BASE_PACKAGES`` and downloads its agent tools;
- the bootstrap (controller) instance starts the coordination service from
  a script and runs ``<agent> bootstrap-state``;
- every other instance runs ``<agent> machine``.

The coordination daemon package (``COORDINATION_PACKAGE``) is never part of
the package list.  The controller fetches and starts the service itself.
"""

from __future__ import annotations

import gzip
import shlex

import yaml
from pydantic import BaseModel, ConfigDict, Field

from fleetcore.models.hardware import Constraint
from fleetcore.models.metadata import ToolsSpec

BASE_PACKAGES: tuple[str, ...] = (
    "git",
    "curl",
    "cpu-checker",
    "bridge-utils",
    "rsyslog-gnutls",
)

COORDINATION_PACKAGE = "zookeeperd"
COORDINATION_SERVICE = "fleet-coordination"

DATA_DIR = "/var/lib/fleet"
LOG_DIR = "/var/log/fleet"


class CloudConfig(BaseModel):
    """The rendered decision: what one instance installs and runs on first boot."""

    model_config = ConfigDict(frozen=True)

    packages: list[str] = Field(default_factory=list)
    runcmd: list[str] = Field(default_factory=list)
    apt_update: bool = True
    apt_upgrade: bool = False

    def render(self) -> bytes:
        """Render as a ``#cloud-config`` YAML document."""
        body = yaml.safe_dump(
            self.model_dump(mode="json"), default_flow_style=False, sort_keys=True
        )
        return ("#cloud-config\n" + body).encode("utf-8")

    def user_data(self) -> bytes:
        """Gzip-compressed rendering, as handed to the backend."""
        return gzip.compress(self.render(), mtime=0)

    @classmethod
    def from_user_data(cls, data: bytes) -> CloudConfig:
        """Decode user data produced by ``user_data``."""
        return cls.model_validate(yaml.safe_load(gzip.decompress(data)))


def _tools_scripts(tools: ToolsSpec) -> list[str]:
    tools_dir = f"{DATA_DIR}/tools/{tools.binary_version}"
    scripts = [
        f"mkdir -p {shlex.quote(tools_dir)}",
        f"curl -sSfL -o {shlex.quote(tools_dir + '/tools.tar.gz')} {shlex.quote(tools.url)}",
    ]
    if tools.sha256:
        scripts.append(
            f"echo {shlex.quote(tools.sha256 + '  ' + tools_dir + '/tools.tar.gz')}"
            " | sha256sum -c -"
        )
    scripts.append(
        f"tar zxf {shlex.quote(tools_dir + '/tools.tar.gz')} -C {shlex.quote(tools_dir)}"
    )
    return scripts


def bootstrap_config(
    tools: ToolsSpec, state_url: str, constraint: Constraint, agent: str = "fleetd"
) -> CloudConfig:
    """Cloud-init for the first control-plane instance.

    The agent finds its own instance id in the bootstrap record at
    ``state_url`` once the launch has been recorded.
    """
    tools_dir = f"{DATA_DIR}/tools/{tools.binary_version}"
    runcmd = [f"mkdir -p {LOG_DIR}", *_tools_scripts(tools)]
    runcmd += [
        f"{shlex.quote(tools_dir + '/' + agent)} coordination-service --install"
        f" --data-dir {DATA_DIR}/db",
        f"start {COORDINATION_SERVICE}",
        " ".join([
            shlex.quote(f"{tools_dir}/{agent}"),
            "bootstrap-state",
            f"--data-dir {DATA_DIR}",
            f"--state-url {shlex.quote(state_url)}",
            f"--constraints {shlex.quote(str(constraint))}",
        ]),
    ]
    return CloudConfig(packages=list(BASE_PACKAGES), runcmd=runcmd)


def machine_config(
    tools: ToolsSpec, machine_id: str, nonce: str, agent: str = "fleetd"
) -> CloudConfig:
    """Cloud-init for a regular (non-controller) machine."""
    tools_dir = f"{DATA_DIR}/tools/{tools.binary_version}"
    runcmd = [f"mkdir -p {LOG_DIR}", *_tools_scripts(tools)]
    runcmd.append(
        " ".join([
            shlex.quote(f"{tools_dir}/{agent}"),
            "machine",
            f"--data-dir {DATA_DIR}",
            f"--machine-id {shlex.quote(machine_id)}",
            f"--nonce {shlex.quote(nonce)}",
        ])
    )
    return CloudConfig(packages=list(BASE_PACKAGES), runcmd=runcmd)
