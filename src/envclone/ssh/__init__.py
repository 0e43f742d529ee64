"""SSH bridge: host client config and sshd bootstrap in the dev container."""

from envclone.ssh.config import generate_config_block, host_alias, render_host_entry, write_ssh_config
from envclone.ssh.server import SSHBootstrap, find_public_key

__all__ = [
    "SSHBootstrap",
    "find_public_key",
    "generate_config_block",
    "host_alias",
    "render_host_entry",
    "write_ssh_config",
]
