"""Solskin - operability policy enforcement for Kubernetes workloads."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("solskin")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
