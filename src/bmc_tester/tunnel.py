"""SSH tunnel for reaching a BMC network through a jumphost."""

import logging
from typing import Dict, Optional

from sshtunnel import SSHTunnelForwarder

from .config import DEFAULT_PORTS, Options, parse_endpoint


logger = logging.getLogger(__name__)

LOCAL_HOST = "127.0.0.1"


class SSHTunnel:
    """
    Forwards a local port to a BMC endpoint through an SSH jumphost.

    The BMC's host and port come from its endpoint URL. Once started,
    ``route()`` rewrites connection options to go through the local port
    while the BMC keeps seeing its own name in the Host header.
    """

    def __init__(
        self,
        jumphost: str,
        endpoint: str,
        jumphost_port: int = 22,
        jumphost_username: Optional[str] = None,
        ssh_key_path: Optional[str] = None,
        ssh_password: Optional[str] = None,
    ) -> None:
        self.jumphost = jumphost
        self.jumphost_port = jumphost_port
        self.jumphost_username = jumphost_username
        self.ssh_key_path = ssh_key_path
        self.ssh_password = ssh_password
        self.scheme, self.bmc_host, self.bmc_port = parse_endpoint(endpoint)
        self.forwarder: Optional[SSHTunnelForwarder] = None
        self.local_bind_port: Optional[int] = None

    @property
    def host_header(self) -> str:
        """Host header the BMC expects; the port is kept only when non-default."""
        if self.bmc_port == DEFAULT_PORTS[self.scheme]:
            return self.bmc_host
        return f"{self.bmc_host}:{self.bmc_port}"

    @property
    def local_endpoint(self) -> str:
        if self.local_bind_port is None:
            raise RuntimeError("SSH tunnel is not started")
        return f"{self.scheme}://{LOCAL_HOST}:{self.local_bind_port}"

    def _auth_kwargs(self) -> Dict[str, str]:
        # a key wins over a password; with neither, paramiko uses the agent and ~/.ssh
        if self.ssh_key_path:
            return {"ssh_pkey": self.ssh_key_path}
        if self.ssh_password:
            return {"ssh_password": self.ssh_password}
        return {}

    def start(self) -> int:
        """
        Open the tunnel on a free local port.

        Returns:
            Local port forwarded to the BMC
        """
        self.forwarder = SSHTunnelForwarder(
            ssh_address_or_host=(self.jumphost, self.jumphost_port),
            ssh_username=self.jumphost_username,
            remote_bind_address=(self.bmc_host, self.bmc_port),
            local_bind_address=(LOCAL_HOST, 0),
            **self._auth_kwargs(),
        )
        self.forwarder.start()
        self.local_bind_port = self.forwarder.local_bind_port

        logger.info(
            f"Tunneling {self.local_endpoint} -> {self.jumphost} -> "
            f"{self.bmc_host}:{self.bmc_port}"
        )
        return self.local_bind_port

    def route(self, options: Options) -> Options:
        """Point connection options at the tunnel."""
        return options.with_endpoint(self.local_endpoint, host_header=self.host_header)

    def stop(self) -> None:
        if self.forwarder:
            self.forwarder.stop()
            self.forwarder = None
            self.local_bind_port = None
            logger.info(f"Closed tunnel to {self.bmc_host}:{self.bmc_port}")
