import json
from collections import namedtuple

import pytest
from hexbytes import HexBytes

from chamadeploy import db

TREASURER = '0x' + '1' * 40
PRICE_FEED = '0x' + '2' * 40
GAS_LIMIT = 7500000
GAS_MULTIPLIER = 3

Call = namedtuple('Call', ('name', 'args', 'options'))


class FakeDeploy(object):
    """Deploy capability handing out sequential addresses and recording every call"""

    def __init__(self, addresses=None, fail_on=None):
        self.addresses = addresses or {}
        self.fail_on = fail_on
        self.calls = []

    def __call__(self, name, args, options):
        self.calls.append(Call(name, args, options))
        if name == self.fail_on:
            raise RuntimeError('Transaction for {} failed, check network state'.format(name))

        return self.addresses.get(name, '0x{:040x}'.format(len(self.calls)))

    @property
    def names(self):
        return [call.name for call in self.calls]


class FakeConstructorCall(object):
    def __init__(self, eth, abi, bytecode, args):
        self.eth = eth
        self.abi = abi
        self.bytecode = bytecode
        self.args = args

    def estimate_gas(self, tx):
        if self.eth.estimate is None:
            raise ValueError('execution reverted')
        return self.eth.estimate

    def build_transaction(self, opts):
        return dict(opts, data=self.bytecode, args=self.args)


class FakeContractFactory(object):
    def __init__(self, eth, abi, bytecode):
        self.eth = eth
        self.abi = abi
        self.bytecode = bytecode

    def constructor(self, *args):
        return FakeConstructorCall(self.eth, self.abi, self.bytecode, list(args))


class FakeEth(object):
    def __init__(self):
        self.estimate = 100000

    def contract(self, abi, bytecode):
        return FakeContractFactory(self, abi, bytecode)


class FakeWeb3(object):
    def __init__(self):
        self.eth = FakeEth()


class FakeNetwork(object):
    """Stand-in for Network which mines every transaction successfully"""

    def __init__(self):
        self.name = 'test'
        self.eth_uri = 'http://localhost:8545'
        self.chain_id = 1337
        self.gas_limit = GAS_LIMIT
        self.gas_price = 0
        self.gas_estimate_multiplier = GAS_MULTIPLIER
        self.contract_config = {}
        self.address = '0x' + '3' * 40
        self.nonce = 0
        self.w3 = FakeWeb3()
        self.transactions = []

    def txopts(self):
        ret = {
            'chainId': self.chain_id,
            'from': self.address,
            'gas': self.gas_limit,
            'gasPrice': self.gas_price,
            'nonce': self.nonce,
        }
        self.nonce += 1
        return ret

    def sign_transaction(self, tx):
        self.transactions.append(tx)
        return b'signed'

    def send_transaction(self, signed_tx):
        return HexBytes(len(self.transactions).to_bytes(32, 'big'))

    def wait_and_check_transaction(self, txhash):
        return {'contractAddress': '0x{:040x}'.format(0xc0 + int.from_bytes(txhash, 'big')), 'status': 1}


def write_artifact(directory, name, abi=None, bytecode='0x600a600c600039600a6000f3602a60005260206000f3'):
    path = directory / (name + '.json')
    with open(str(path), 'w') as f:
        json.dump({'contractName': name, 'abi': abi or [], 'bytecode': bytecode}, f)
    return path


@pytest.fixture
def fake_deploy():
    return FakeDeploy()


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def artifacts(tmp_path):
    write_artifact(tmp_path, 'UserRegistry')
    write_artifact(tmp_path, 'Chama', abi=[{
        'type': 'constructor',
        'stateMutability': 'nonpayable',
        'inputs': [
            {'name': '_treasurer', 'type': 'address'},
            {'name': '_priceFeed', 'type': 'address'},
            {'name': '_userRegistry', 'type': 'address'},
        ],
    }])
    return str(tmp_path)


@pytest.fixture
def session():
    ret = db.connect('sqlite://')
    yield ret
    ret.remove()
