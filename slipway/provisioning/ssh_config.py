"""Host entries in the local ``~/.ssh/config``."""

import logging
import os

logger = logging.getLogger(__name__)


def remove_ssh_host_entry(content, host):
    """Drop the ``Host <host>`` block from ssh config text.

    A block ends at the next non-indented, non-empty line. Runs of blank lines
    left behind are collapsed to a single blank line.
    """
    header = f"Host {host}"
    kept = []
    skipping = False
    for line in content.split("\n"):
        if line.strip() == header:
            skipping = True
            continue
        if skipping:
            if line and not line.startswith((" ", "\t")):
                skipping = False
                kept.append(line)
            continue
        kept.append(line)

    out = "\n".join(kept)
    while "\n\n\n" in out:
        out = out.replace("\n\n\n", "\n\n")
    return out


def format_host_entry(alias, address, key_file, user="root"):
    return (
        f"\nHost {alias}\n"
        f"    HostName {address}\n"
        f"    User {user}\n"
        f"    IdentityFile {key_file}\n"
        f"    StrictHostKeyChecking no\n"
    )


class SshConfig:
    """Registry of provisioned hosts kept in an ssh client config file."""

    def __init__(self, path=None):
        self.path = path or os.path.join(os.path.expanduser("~"), ".ssh", "config")

    def _read(self):
        if not os.path.exists(self.path):
            return None
        with open(self.path) as f:
            return f.read()

    def _write(self, content):
        os.makedirs(os.path.dirname(self.path), mode=0o700, exist_ok=True)
        with open(self.path, "w") as f:
            f.write(content)

    def register_host(self, alias, address, key_file, user="root"):
        """Add (or replace) the entry for ``alias`` so ``ssh <alias>`` works."""
        content = remove_ssh_host_entry(self._read() or "", alias)
        self._write(content + format_host_entry(alias, address, key_file, user))
        logger.info(f"SSH config: ssh {alias}")

    def unregister_host(self, alias):
        content = self._read()
        if content is None:
            return
        self._write(remove_ssh_host_entry(content, alias))
        logger.info(f"SSH config entry removed: {alias}")
