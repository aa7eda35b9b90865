"""Transaction signing capability and JSON-RPC integration"""
import itertools
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from shielded_launchpad.config import RpcSettings
from shielded_launchpad.errors import TransactionError

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class TransactionRequest:
    """Transaction to submit: destination, value in base units and calldata"""
    to: str
    value: int = 0
    data: str = '0x'

@dataclass(frozen=True)
class TransactionReceipt:
    """Confirmation of a mined transaction"""
    tx_hash: str
    block_number: Optional[int] = None
    status: Optional[int] = None

def encode_memo(memo: str) -> str:
    """Hex-encode a plain text memo as transaction calldata"""
    return '0x' + memo.encode('utf-8').hex()

class TransactionSigner(ABC):
    """
    Capability to submit transactions from one account.

    send_and_confirm blocks until the transaction is confirmed and returns
    its receipt, or returns None when it did not confirm.
    """

    @abstractmethod
    def get_address(self) -> str:
        """Public address transactions are sent from"""

    @abstractmethod
    def send_and_confirm(self, request: TransactionRequest) -> Optional[TransactionReceipt]:
        """Submit request and wait for its outcome"""

class JsonRpcSigner(TransactionSigner):
    """Signs through a node-managed account using eth_sendTransaction"""

    def __init__(self, rpc: RpcSettings, address: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.rpc = rpc
        self._address = address
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def _call(self, method: str, params: List[Any]) -> Any:
        """Make a single JSON-RPC call and return its result"""
        payload = {
            'jsonrpc': '2.0',
            'id': next(self._ids),
            'method': method,
            'params': params
        }
        try:
            response = self.session.post(self.rpc.url, json=payload, timeout=self.rpc.request_timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"RPC request {method} failed: {e}")
            raise TransactionError(f"RPC request {method} failed: {e}")

        if body.get('error'):
            logger.error(f"RPC error from {method}: {body['error']}")
            raise TransactionError(f"RPC error from {method}: {body['error'].get('message', body['error'])}")
        return body.get('result')

    def get_address(self) -> str:
        """Configured address, or the node's first managed account"""
        if not self._address:
            accounts = self._call('eth_accounts', [])
            if not accounts:
                raise TransactionError("RPC node manages no accounts")
            self._address = accounts[0]
        return self._address

    def _wait_for_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Poll for a receipt until one is mined or the confirmation window closes"""
        deadline = time.monotonic() + self.rpc.confirmation_timeout
        while True:
            receipt = self._call('eth_getTransactionReceipt', [tx_hash])
            if receipt:
                return receipt
            if time.monotonic() >= deadline:
                return None
            time.sleep(self.rpc.poll_interval)

    def send_and_confirm(self, request: TransactionRequest) -> Optional[TransactionReceipt]:
        tx = {
            'from': self.get_address(),
            'to': request.to,
            'value': hex(request.value),
            'data': request.data
        }
        tx_hash = self._call('eth_sendTransaction', [tx])
        logger.info(f"Submitted transaction {tx_hash} to {request.to}")

        receipt = self._wait_for_receipt(tx_hash)
        if receipt is None:
            logger.warning(f"Transaction {tx_hash} not confirmed within {self.rpc.confirmation_timeout}s")
            return None

        status = int(receipt['status'], 16) if receipt.get('status') else None
        if status == 0:
            logger.warning(f"Transaction {tx_hash} reverted")
            return None

        block_number = int(receipt['blockNumber'], 16) if receipt.get('blockNumber') else None
        return TransactionReceipt(
            tx_hash=receipt.get('transactionHash', tx_hash),
            block_number=block_number,
            status=status
        )
