"""Providers for running Kubernetes cluster nodes as docker containers."""

__version__ = "0.1.0"