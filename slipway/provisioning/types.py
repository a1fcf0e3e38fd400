"""Shared data types for provisioners."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ServerInfo:
    """A provisioned server and how to reach it."""

    name: str
    ip: str
    region: str
    ssh_key_file: str
    ssh_key_id: str = ""
