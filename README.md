# kindproviders

A provider that manages Kubernetes cluster "nodes" as docker containers by
driving the `docker` command-line tool.

The package runs the `docker` CLI as a subprocess. Anything that talks to the
runtime needs `docker` on `PATH`. Some helpers only compute values and work
without it:

- image-name sanitising
- subnet generation
- `docker run` argument building
- parsing of `docker info` output

## Install

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Layout

- `kindproviders.command` runs host commands.
  - `Cmd` has chainable `set_env`, `set_stdin`, `set_stdout` and `set_stderr`.
  - `command()`, `output()` and `output_lines()` build and run commands.
  - `RunError` is raised when a command fails. It carries the combined
    output, stdout and exit status.
  - This module also defines the abstract `Node` interface.
- `kindproviders.providers` holds the abstract `Provider` interface and the
  `ProviderInfo` capabilities record.
- `kindproviders.docker.provider` has `DockerProvider`, which offers:
  - `list_clusters`
  - `list_nodes`
  - `delete_nodes`
  - `get_api_server_endpoint`
  - `get_api_server_internal_endpoint`
  - `info`, which is cached after the first call
- `kindproviders.docker.node` has `DockerNode`, with `role`, `ip`, `command`
  and `serial_logs`. `NodeCmd` runs a command inside a node through
  `docker exec`.
- `kindproviders.docker.network` manages the node network.
  - `ensure_network` creates the network with a ULA IPv6 subnet derived from
    its name. It probes other subnets on a pool overlap, falls back to IPv4
    only when IPv6 is unavailable, and removes duplicate networks with the
    same name.
  - `generate_ula_subnet_from_name` derives the subnet.
  - `sort_network_inspect_entries` gives the order in which duplicates are
    kept.
- `kindproviders.docker.images` makes sure images are present locally.
  `ensure_node_images`, `pull_if_not_present` and `pull` retry with growing
  pauses, and `sanitize_image` normalises image names.
- `kindproviders.docker.util` probes the docker host with `is_available`,
  `userns_remap`, `mount_dev_mapper`, `mount_fuse`, `info` and `parse_info`.
- `kindproviders.docker.provision` builds `docker run` arguments.
  - Functions: `common_args`, `get_proxy_env`, `generate_mount_bindings`,
    `generate_port_mappings`, `port_or_get_free_port` and `run_args_for_node`.
  - Data classes: `Mount` and `PortMapping`.
  - Enums: `IPFamily`, `MountPropagation` and `PortProtocol`.
  - `create_container` starts a container with those arguments.

## Examples

List clusters and their nodes:

```python
from kindproviders.docker.provider import DockerProvider

provider = DockerProvider()
for cluster in provider.list_clusters():
    print(cluster, [str(n) for n in provider.list_nodes(cluster)])
```

Run a command inside a node:

```python
import sys

node = provider.list_nodes("kind")[0]
node.command("cat", "/etc/os-release").set_stdout(sys.stdout).run()
```

Find the API server endpoints of a control-plane node:

```python
provider.get_api_server_endpoint(node)           # e.g. '127.0.0.1:40123'
provider.get_api_server_internal_endpoint(node)  # e.g. 'kind-control-plane:6443'
```

Ask what the runtime supports:

```python
info = provider.info()
print(info.rootless, info.cgroup2, info.supports_memory_limit)
```

Derive the IPv6 ULA subnet for a network name:

```python
from kindproviders.docker.network import generate_ula_subnet_from_name

generate_ula_subnet_from_name("kind", 0)  # 'fc00:f853:ccd:e793::/64'
```

Build publish arguments for a port mapping:

```python
from kindproviders.docker.provision import IPFamily, PortMapping, generate_port_mappings

generate_port_mappings(IPFamily.IPV4, PortMapping(container_port=80, host_port=8080))
# ['--publish=0.0.0.0:8080:80/TCP']
```

## What it does not do

- There is no command-line tool.
- There is no podman support. The `kindproviders.podman` package is empty.
- The package does not provision a whole cluster from a configuration file.
  It provides the pieces: networks, images, run arguments and container
  creation. The caller decides which nodes to create and calls those pieces.
- It does not set up Kubernetes inside the nodes and does not write
  kubeconfig files.