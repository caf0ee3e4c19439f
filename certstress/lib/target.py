"""
Target management module for certstress.

A Target describes the CA host the RPC enrollment client connects to and
the credentials it authenticates with:

- Authentication parameters (username, password, hashes, Kerberos tickets)
- Target name resolution (DNS, local resolution, IP address validation)
- Connection settings (timeout)

The certreq enrollment client does not need a Target; certreq.exe runs as
the logged-on Windows user.
"""

import argparse
import os
import socket
from typing import Dict, Optional, Tuple

from dns.resolver import Resolver
from impacket.krb5.ccache import CCache

from certstress.lib.errors import handle_error
from certstress.lib.logger import logging


class Target:
    """
    Connection details for one CA host.
    """

    def __init__(
        self,
        resolver: "DnsResolver",
        domain: str = "",
        username: str = "",
        password: Optional[str] = None,
        remote_name: str = "",
        lmhash: str = "",
        nthash: str = "",
        do_kerberos: bool = False,
        aes: Optional[str] = None,
        dc_ip: Optional[str] = None,
        target_ip: Optional[str] = None,
        timeout: int = 10,
    ) -> None:
        self.resolver = resolver

        self.domain: str = domain
        self.username: str = username
        self.password: Optional[str] = password
        self.remote_name: str = remote_name
        self.lmhash: str = lmhash
        self.nthash: str = nthash
        self.do_kerberos: bool = do_kerberos
        self.aes: Optional[str] = aes
        self.dc_ip: Optional[str] = dc_ip
        self.target_ip: Optional[str] = target_ip
        self.timeout: int = timeout

    @staticmethod
    def from_options(options: argparse.Namespace) -> "Target":
        """
        Create a Target from command line options.

        The CA server (-ca-server) is the remote name; -target-ip overrides
        its resolved address.

        Args:
            options: Command line options

        Returns:
            Target: Configured target object

        Raises:
            Exception: If no CA server was specified
        """
        remote_name = getattr(options, "ca_server", None) or ""
        target_ip = getattr(options, "target_ip", None)
        dc_ip = getattr(options, "dc_ip", None)

        ns = getattr(options, "ns", None) or dc_ip
        dns_tcp = getattr(options, "dns_tcp", False)
        timeout = getattr(options, "timeout", 10)

        principal = getattr(options, "username", None)
        password = getattr(options, "password", None)
        hashes = getattr(options, "hashes", None)
        do_kerberos = getattr(options, "do_kerberos", False)
        aes = getattr(options, "aes", None)
        no_pass = getattr(options, "no_pass", False)

        if not remote_name:
            raise Exception("CA server (-ca-server) is not specified")

        # Parse username and domain from principal format (user@DOMAIN)
        domain = ""
        username = ""

        if principal is not None:
            parts = principal.split("@")
            if len(parts) == 1:
                username = parts[0]
            else:
                username = "@".join(parts[:-1])
                domain = parts[-1]

        if do_kerberos:
            principal = get_kerberos_principal()
            if principal:
                username, domain = principal

        domain = domain.upper()
        username = username.upper()

        if (
            not password
            and username != ""
            and hashes is None
            and aes is None
            and no_pass is not True
            and do_kerberos is not True
        ):
            from getpass import getpass

            password = getpass("Password:")

        lmhash = ""
        nthash = ""
        if hashes is not None:
            hash_parts = hashes.split(":")
            if len(hash_parts) == 1:
                nthash = hash_parts[0]
                lmhash = nthash
            else:
                lmhash, nthash = hash_parts
                if len(lmhash) == 0:
                    lmhash = nthash

        # AES key implies Kerberos
        if aes is not None:
            do_kerberos = True

        if do_kerberos and is_ip(remote_name):
            logging.warning(
                "CA server is an IP address and Kerberos authentication is used. This might fail"
            )

        logging.debug(f"Nameserver: {ns!r}")
        logging.debug(f"DC IP: {dc_ip!r}")
        logging.debug(f"Remote Name: {remote_name!r}")
        logging.debug(f"Domain: {domain!r}")
        logging.debug(f"Username: {username!r}")

        resolver = DnsResolver.create(ns=ns, dns_tcp=dns_tcp)

        if is_ip(remote_name):
            target_ip = remote_name

        if target_ip is None:
            target_ip = resolver.resolve(remote_name)

        logging.debug(f"Target IP: {target_ip!r}")

        return Target(
            resolver,
            domain=domain,
            username=username,
            password=password,
            remote_name=remote_name,
            lmhash=lmhash,
            nthash=nthash,
            do_kerberos=do_kerberos,
            aes=aes,
            dc_ip=dc_ip,
            target_ip=target_ip,
            timeout=timeout,
        )

    def __repr__(self) -> str:
        return f"<Target ({self.remote_name!r} as {self.username!r}@{self.domain!r})>"


class DnsResolver:
    """
    DNS resolver for hostname resolution with caching.
    """

    def __init__(self) -> None:
        self.resolver: Resolver = Resolver()
        self.use_tcp: bool = False
        self.mappings: Dict[str, str] = {}

    @staticmethod
    def create(ns: Optional[str] = None, dns_tcp: bool = False) -> "DnsResolver":
        """
        Create a DnsResolver with specified parameters.

        Args:
            ns: Nameserver to use
            dns_tcp: Whether to use TCP for DNS queries
        """
        resolver = DnsResolver()

        if ns is not None:
            resolver.resolver.nameservers = [ns]

        resolver.use_tcp = dns_tcp

        return resolver

    def resolve(self, hostname: str) -> str:
        """
        Resolve hostname to IP address using DNS, then the local resolver.

        Args:
            hostname: The hostname to resolve

        Returns:
            The resolved IP address or the original hostname if resolution fails
        """
        if hostname in self.mappings:
            logging.debug(f"Resolved {hostname!r} from cache: {self.mappings[hostname]}")
            return self.mappings[hostname]

        if is_ip(hostname):
            return hostname

        ip_addr = None
        try:
            answers = self.resolver.resolve(hostname, tcp=self.use_tcp)
            if answers:
                ip_addr = str(answers[0])
        except Exception as e:
            logging.warning(f"DNS resolution failed: {e}")
            handle_error(True)

        if ip_addr is None:
            try:
                ip_addr = socket.gethostbyname(hostname)
            except OSError:
                ip_addr = None

        if ip_addr is None:
            logging.warning(f"Failed to resolve: {hostname}")
            return hostname

        self.mappings[hostname] = ip_addr
        return ip_addr


def is_ip(hostname: Optional[str]) -> bool:
    """Check if the given hostname is an IPv4 address."""
    if hostname is None:
        return False

    try:
        _ = socket.inet_aton(hostname)
        return True
    except OSError:
        return False


def get_kerberos_principal() -> Optional[Tuple[str, str]]:
    """
    Get Kerberos principal information from the KRB5CCNAME credential cache.

    Returns:
        Tuple containing (username, domain) or None if not available
    """
    krb5ccname = os.getenv("KRB5CCNAME")
    if krb5ccname is None:
        logging.warning("KRB5CCNAME environment variable not set")
        return None

    try:
        ccache = CCache.loadFile(krb5ccname)
    except Exception:
        return None

    if ccache is None or ccache.principal is None:
        logging.error("No principal found in CCache file")
        return None

    if ccache.principal.realm is None:
        logging.error("No realm/domain found in CCache file")
        return None

    domain = ccache.principal.realm["data"].decode("utf-8")
    username = "/".join(map(lambda x: x["data"].decode(), ccache.principal.components))
    logging.debug(f"Principal retrieved from CCache: {username}@{domain}")

    return username, domain
