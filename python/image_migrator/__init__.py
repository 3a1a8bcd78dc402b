"""Migrate container images between registries through a Docker engine."""

__version__ = "0.1.0"
