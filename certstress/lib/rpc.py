"""
RPC (Remote Procedure Call) utilities for certstress.

This module establishes authenticated DCE/RPC connections to the CA host,
over the named pipe or the dynamic TCP endpoint, with NTLM or Kerberos.
Kerberos tickets are taken from KRB5CCNAME by impacket when no password or
key is given.
"""

from typing import Optional

from impacket import uuid
from impacket.dcerpc.v5 import epm, rpcrt, transport

from certstress.lib.errors import handle_error
from certstress.lib.logger import is_verbose, logging
from certstress.lib.target import Target


def get_dce_rpc_from_string_binding(
    string_binding: str,
    target: Target,
    timeout: int = 5,
    auth_level: int = rpcrt.RPC_C_AUTHN_LEVEL_PKT_PRIVACY,
) -> rpcrt.DCERPC_v5:
    """
    Create a DCE RPC connection from a string binding.

    Args:
        string_binding: The RPC string binding (e.g., "ncacn_np:server[pipe]")
        target: Target object containing authentication parameters
        timeout: Connection timeout in seconds
        auth_level: Authentication level for the connection

    Returns:
        Configured DCERPC_v5 object (not connected)
    """
    rpctransport = transport.DCERPCTransportFactory(string_binding)
    rpctransport.setRemoteHost(target.target_ip or "")
    rpctransport.setRemoteName(target.remote_name)
    rpctransport.set_connect_timeout(timeout)
    rpctransport.set_kerberos(target.do_kerberos, kdcHost=target.dc_ip)

    rpctransport.set_credentials(
        target.username,
        target.password or "",
        target.domain,
        target.lmhash,
        target.nthash,
        target.aes or "",
    )

    dce = rpctransport.get_dce_rpc()
    dce.set_auth_level(auth_level)

    if target.do_kerberos:
        dce.set_auth_type(rpcrt.RPC_C_AUTHN_GSS_NEGOTIATE)

    return dce


def get_dynamic_endpoint(
    interface: bytes, target: str, timeout: int = 5
) -> Optional[str]:
    """
    Resolve a dynamic endpoint for an RPC interface through the endpoint mapper.

    Args:
        interface: RPC interface identifier (UUID)
        target: Target hostname or IP address
        timeout: Connection timeout in seconds

    Returns:
        Resolved endpoint string or None if resolution fails
    """
    string_binding = f"ncacn_ip_tcp:{target}[135]"
    rpctransport = transport.DCERPCTransportFactory(string_binding)
    rpctransport.set_connect_timeout(timeout)
    dce = rpctransport.get_dce_rpc()

    interface_str = uuid.bin_to_string(interface)
    logging.debug(f"Trying to resolve dynamic endpoint {interface_str}")

    try:
        dce.connect()
    except Exception as e:
        logging.warning(f"Failed to connect to endpoint mapper: {e}")
        handle_error(True)
        return None

    try:
        endpoint = epm.hept_map(target, interface, protocol="ncacn_ip_tcp", dce=dce)
        logging.debug(f"Resolved dynamic endpoint {interface_str} to {endpoint}")
        return endpoint
    except Exception as e:
        logging.warning(f"Failed to resolve dynamic endpoint {interface_str}: {e}")
        handle_error(True)
        return None


def get_dce_rpc(
    interface: bytes,
    named_pipe: str,
    target: Target,
    timeout: int = 5,
    dynamic: bool = False,
) -> Optional[rpcrt.DCERPC_v5]:
    """
    Get a connected and bound DCE RPC interface.

    Tries the named pipe and the dynamic endpoint, in the order selected by
    `dynamic`, and returns the first one that connects and binds.

    Args:
        interface: RPC interface identifier (UUID)
        named_pipe: Named pipe path to connect to
        target: Target object containing connection parameters
        timeout: Connection timeout in seconds
        dynamic: If True, try dynamic endpoint first, otherwise try named pipe first

    Returns:
        Connected DCERPC_v5 object or None if all connection attempts fail
    """

    def _try_binding(string_binding: str) -> Optional[rpcrt.DCERPC_v5]:
        dce = get_dce_rpc_from_string_binding(string_binding, target, timeout)

        logging.debug(f"Trying to connect to endpoint: {string_binding}")
        try:
            dce.connect()
        except Exception as e:
            if is_verbose():
                logging.warning(f"Failed to connect to endpoint {string_binding}: {e}")
                handle_error(True)
            return None

        try:
            _ = dce.bind(interface)
            return dce
        except Exception as e:
            if is_verbose():
                logging.warning(f"Failed to bind to interface: {e}")
                handle_error(True)
            return None

    def _try_np() -> Optional[rpcrt.DCERPC_v5]:
        return _try_binding(f"ncacn_np:{target.target_ip}[{named_pipe}]")

    def _try_dyn() -> Optional[rpcrt.DCERPC_v5]:
        string_binding = get_dynamic_endpoint(interface, target.target_ip or "", timeout)
        if string_binding is None:
            # TCP port 135 firewalled off, or the service is not running
            logging.error(
                f"Failed to get dynamic TCP endpoint for {uuid.bin_to_string(interface)}"
            )
            return None

        return _try_binding(string_binding)

    if not target.target_ip:
        logging.error("Target IP is not set")
        return None

    methods = [_try_dyn, _try_np] if dynamic else [_try_np, _try_dyn]

    for method in methods:
        dce = method()
        if dce is not None:
            return dce

    return None
