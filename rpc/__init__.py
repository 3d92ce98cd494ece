"""RPC module for interacting with a Solana JSON-RPC node"""
import logging
import threading
import requests
from typing import Any, Optional

from .keys import InvalidAddressError, to_pubkey, to_signature

logger = logging.getLogger(__name__)

class RPCError(Exception):
    """Base exception for RPC errors.

    Every RPC failure means the network could not answer authoritatively,
    so callers treat all of them as retryable upstream unavailability.
    """
    reason = 'upstream_unavailable'

    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"RPC Error [{code}] in {method}: {message}" if code else message)

class NodeConnectionError(RPCError):
    """Raised when connection to node fails"""
    pass

class NodeAuthError(RPCError):
    """Raised when the RPC provider rejects our credentials"""
    pass

class SolanaRPCError(RPCError):
    """Solana-specific JSON-RPC error codes and messages

    Common error codes:
    -32002 - Transaction simulation failed
    -32003 - Transaction signature verification failure
    -32004 - Block not available for slot
    -32005 - Node is unhealthy
    -32007 - Slot skipped
    -32009 - Slot missing in long-term storage
    -32014 - Block status not yet available
    -32015 - Transaction version not supported
    -32016 - Minimum context slot has not been reached
    -32601 - Method not found
    -32602 - Invalid params
    -32603 - Internal error
    """
    # Map of known Solana error codes to human-readable messages
    ERROR_MESSAGES = {
        -32002: "Transaction simulation failed",
        -32003: "Transaction signature verification failure",
        -32004: "Block not available for slot",
        -32005: "Node is unhealthy",
        -32007: "Slot skipped",
        -32009: "Slot missing in long-term storage",
        -32014: "Block status not yet available",
        -32015: "Transaction version not supported",
        -32016: "Minimum context slot has not been reached",
        -32601: "Method not found",
        -32602: "Invalid params",
        -32603: "Internal error",
    }

    def __init__(self, message: str, code: int, method: str):
        standard_msg = self.ERROR_MESSAGES.get(code, "Unknown error")
        full_msg = f"{standard_msg} - {message}" if message != standard_msg else message
        super().__init__(full_msg, code, method)

class RPCMethod:
    """Descriptor class for RPC methods"""
    def __init__(self, method_name: str):
        self.method_name = method_name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self

        def caller(*args) -> Any:
            return obj._call_method(self.method_name, *args)

        return caller

class SolanaRPC:
    """Solana JSON-RPC client.

    One instance is created at process start and passed to every component
    that talks to the network. Calls are blocking; async callers run them in
    a worker thread, so the requests session and the request counter are
    shared across threads. The counter is guarded by a lock.
    """

    def __init__(self, url: str, timeout: int = 10):
        """Initialize RPC client.

        Args:
            url: JSON-RPC endpoint URL
            timeout: Per-request timeout in seconds
        """
        self.url = url
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers['content-type'] = 'application/json'

        self._request_id = 0
        self._id_lock = threading.Lock()

    def _get_request_id(self) -> int:
        """Get unique request ID"""
        with self._id_lock:
            self._request_id += 1
            return self._request_id

    def _call_method(self, method: str, *args) -> Any:
        """Make RPC call to the Solana node

        Args:
            method: RPC method name
            *args: Method arguments

        Returns:
            The ``result`` member of the response

        Raises:
            NodeConnectionError: Connection to node failed
            NodeAuthError: Authentication failed
            SolanaRPCError: Node returned a JSON-RPC error
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": list(args),
            "id": self._get_request_id()
        }

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)

            if response.status_code in (401, 403):
                raise NodeAuthError(f"RPC provider rejected request ({response.status_code})")

            # Try to parse response even if status code is error
            result = response.json()

            if 'error' in result and result['error'] is not None:
                error = result['error']
                raise SolanaRPCError(
                    error.get('message', 'Unknown error'),
                    error.get('code', -1),
                    method
                )

            response.raise_for_status()

            return result['result']

        except requests.exceptions.Timeout as e:
            raise NodeConnectionError(
                f"Request timed out after {self.timeout} seconds"
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise NodeConnectionError(
                f"Failed to connect to Solana node at {self.url}"
            ) from e
        except requests.exceptions.HTTPError as e:
            raise NodeConnectionError(
                f"HTTP error occurred: {str(e)}"
            ) from e
        except requests.exceptions.RequestException as e:
            raise NodeConnectionError(
                f"Request failed: {str(e)}"
            ) from e
        except (KeyError, ValueError) as e:
            raise NodeConnectionError(
                f"Invalid response format: {str(e)}"
            ) from e

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    # Cluster methods
    getHealth = RPCMethod('getHealth')
    getVersion = RPCMethod('getVersion')
    getSlot = RPCMethod('getSlot')

    # Account methods
    getBalance = RPCMethod('getBalance')

    # Blockhash methods
    getLatestBlockhash = RPCMethod('getLatestBlockhash')
    isBlockhashValid = RPCMethod('isBlockhashValid')

    # Transaction methods
    getTransaction = RPCMethod('getTransaction')
    getSignatureStatuses = RPCMethod('getSignatureStatuses')
    sendTransaction = RPCMethod('sendTransaction')

# Export client and error types
__all__ = [
    'SolanaRPC',
    'RPCError',
    'NodeConnectionError',
    'NodeAuthError',
    'SolanaRPCError',
    'InvalidAddressError',
    'to_pubkey',
    'to_signature'
]
