"""Idle-shutdown sidecar for an on-demand Minecraft server task."""

__version__ = "0.1.0"
