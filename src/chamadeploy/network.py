import logging
import string
import time

from eth_account import Account
from eth_utils import is_checksum_address, keccak, to_checksum_address
from hexbytes import HexBytes
from web3 import Web3, HTTPProvider
from web3.exceptions import Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

logger = logging.getLogger(__name__)


def normalize_address(addr):
    """Normalize an Ethereum address into a canonical form

    :param addr: Address to normalize
    :return: Normalized address
    """
    if addr is None:
        return None

    # YAML loads unquoted hex literals as integers
    if not isinstance(addr, str):
        raise ValueError('Address {0!r} is not a string, quote addresses in configuration'.format(addr))

    if addr.startswith('0x'):
        addr = addr[2:]

    lowhexdigits = set(string.hexdigits.lower())
    if len(addr) != 40 or not all([c in string.hexdigits for c in addr]):
        raise ValueError('Invalid address 0x{0}'.format(addr))

    if all([c in lowhexdigits for c in addr]) or addr.upper() == addr:
        addr = to_checksum_address('0x' + addr)[2:]

    addr = '0x' + addr
    if not is_checksum_address(addr):
        raise ValueError('Address is mixed case, but checksum is invalid')

    return addr


class Network(object):
    """Class for interacting with an Ethereum network.
    """

    def __init__(self, name, eth_uri, chain_id, gas_limit, gas_price, gas_estimate_multiplier, timeout,
                 contract_config):
        """Create a new network.

        :param name: Name of the network
        :param eth_uri: URI of HTTP RPC endpoint to access network from
        :param chain_id: Chain ID of the network
        :param gas_limit: Upper bound for gas limit on this network
        :param gas_price: Gas price to use for this network
        :param gas_estimate_multiplier: Amount to scale gas estimates by for this network
        :param timeout: Timeout for RPC calls on this network
        :param contract_config: Configuration for contracts on this network
        """
        self.name = name
        self.eth_uri = eth_uri
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self.gas_price = gas_price
        self.gas_estimate_multiplier = gas_estimate_multiplier
        self.timeout = timeout
        self.contract_config = contract_config

        self.nonce = 0
        self.w3 = None
        self.address = None
        self.priv_key = None

    def connect(self, skip_checks=False):
        """Connect to the network.

        :param skip_checks: Skip sanity checks to ensure network is reachable and healthy
        :return: None
        """
        self.w3 = Web3(HTTPProvider(self.eth_uri, request_kwargs={'timeout': self.timeout}))
        self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        logger.info('Connected to ethereum client at %s, chain id: %s', self.eth_uri, self.w3.eth.chain_id)

        if not skip_checks:
            self.__preflight_checks()

    def unlock_keyfile(self, keyfile, password):
        """Unlock a JSON keyfile for signing transactions to this network.

        :param keyfile: Keyfile to unlock
        :param password: Password to decrypt keyfile
        :return: True if success, else False
        """
        try:
            self.priv_key = Account.decrypt(keyfile.read(), password)
            self.address = Account.from_key(self.priv_key).address
        except ValueError:
            logger.exception('Incorrect password for keyfile')
            return False

        return True

    def __preflight_checks(self):
        """Perform some sanity checks and retrieve account's current nonce after connecting to a network.

        :return: None
        """
        logger.info('Using address: %s', self.address)

        if self.chain_id != self.w3.eth.chain_id:
            raise ValueError('Connected to network with incorrect chain id')

        while self.w3.eth.get_block('latest')['gasLimit'] < self.gas_limit:
            logger.info('Waiting for block gas limit to increase to minimum')
            time.sleep(1)

        self.nonce = self.__get_nonce()

    def __get_nonce(self):
        """Retrieve account's current nonce.

        :return: Current nonce for account
        """
        if self.address is None:
            logger.warning('No account set, cannot fetch nonce')
            return 0

        last_nonce = -1
        while True:
            # Also include transactions in txpool
            nonce = self.w3.eth.get_transaction_count(self.address, 'pending')

            if nonce == last_nonce:
                logger.info('Settled on transaction count %s', nonce)
                break

            last_nonce = nonce
            time.sleep(2)

        return nonce

    def txopts(self, increment_nonce=True):
        """Default transaction options for this network.

        :param increment_nonce: Should we increment our nonce after fetching our options
        :return: Default transaction options for this network
        """
        logger.info('Preparing tx with nonce %s', self.nonce)
        ret = {
            'chainId': self.chain_id,
            'from': self.address,
            'gas': self.gas_limit,
            'gasPrice': self.gas_price,
            'nonce': self.nonce,
        }

        # XXX: Everything is synchronous so we don't need to lock
        if increment_nonce:
            self.nonce += 1

        return ret

    def sign_transaction(self, tx):
        """Sign a provided transaction with our private key.

        :param tx: Transaction to sign
        :return: Signed raw transaction
        """
        logger.info('Signing transaction with nonce %s', tx.get('nonce'))
        return self.w3.eth.account.sign_transaction(tx, self.priv_key).raw_transaction

    def send_transaction(self, signed_tx):
        """Transmit a signed transaction to the network.

        :param signed_tx: Transaction to send
        :return: Transaction hash of the transmitted transaction
        """
        try:
            txhash = self.w3.eth.send_raw_transaction(signed_tx)
        except (ValueError, Web3Exception) as e:
            if 'known transaction' not in str(e):
                raise

            txhash = HexBytes(keccak(signed_tx))
            logger.warning('Got known transaction error for tx %s', txhash.to_0x_hex())

        logger.info('Submitting tx %s', txhash.to_0x_hex())
        return txhash

    def wait_for_transaction(self, txhash):
        """Wait for a transaction to be mined (blocking).

        :param txhash: Transaction hash to wait on
        :return: Transaction receipt for the provided transaction hash
        """
        return self.w3.eth.wait_for_transaction_receipt(HexBytes(txhash), timeout=self.timeout)

    def check_transaction(self, txhash, receipt):
        """Check that a transaction succeeded.

        :param txhash: Transaction hash to check
        :param receipt: Receipt of the transaction
        :return: True if transaction succeeded, else False
        """
        tx = self.w3.eth.get_transaction(HexBytes(txhash))

        logger.info('Receipt for %s: %s', HexBytes(txhash).to_0x_hex(), dict(receipt))
        return receipt is not None and receipt['gasUsed'] < tx['gas'] and receipt['status'] == 1

    def wait_and_check_transaction(self, txhash):
        """Wait for a transaction to be mined, then check if it succeeded (blocking).

        :param txhash: Transaction hash to wait on and check
        :return: Receipt if transaction succeeded
        """
        txhash = HexBytes(txhash)
        receipt = self.wait_for_transaction(txhash)
        if not self.check_transaction(txhash, receipt):
            raise RuntimeError('Transaction {0} failed, check network state'.format(txhash.to_0x_hex()))
        return receipt
