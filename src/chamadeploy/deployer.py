import json
import logging
import os
import re

from chamadeploy.db import Deployment, Contract
from hexbytes import HexBytes
from sqlalchemy.exc import SQLAlchemyError
from web3.exceptions import Web3Exception

logger = logging.getLogger(__name__)

# Step options and the transaction fields they set
TXOPTS = {
    'gasLimit': 'gas',
    'gas': 'gas',
    'gasPrice': 'gasPrice',
    'value': 'value',
}


# https://stackoverflow.com/questions/1175208/elegant-python-function-to-convert-camelcase-to-snake-case
def camel_case_to_snake_case(s):
    """Convert camel case names to snake case, for naming addresses in the results file.

    :param s: String to convert
    :return: Converted string
    """
    s1 = re.sub(r'(.)([A-Z][a-z]+)', r'\1_\2', s)
    return re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', s1).lower()


def artifact_bytecode(artifact):
    """Get the creation bytecode from a truffle or solc standard JSON artifact.

    :param artifact: Contract artifact
    :return: Bytecode as a hex string
    """
    bytecode = artifact.get('bytecode')
    if bytecode is None:
        bytecode = artifact.get('evm', {}).get('bytecode', {}).get('object')

    if not bytecode:
        raise ValueError('Artifact {} has no bytecode, is it abstract?'.format(artifact.get('contractName')))

    return bytecode


class Deployer(object):
    """Class for deploying contracts from compiled artifacts and recording the deployments.
    """

    def __init__(self, network, artifactsdir, session=None):
        """Create a new Deployer.

        :param network: Network being deployed to
        :param artifactsdir: Directory containing compiled contracts to deploy
        :param session: Session to interact with a database to record deployments to
        """
        self.__network = network
        self.__session = session

        self.deployed = {}
        self.deployment = None

        self.__scan_artifacts(artifactsdir)
        self.__record_deployment()

    def __scan_artifacts(self, artifact_dir):
        """Find all valid contract JSON artifacts in a directory.

        :param artifact_dir: Directory to scan
        :return: None
        """
        self.artifacts = {}
        for filename in sorted(os.listdir(artifact_dir)):
            if os.path.splitext(filename)[-1] != '.json':
                continue

            with open(os.path.join(artifact_dir, filename), 'r') as f:
                j = json.load(f)

            name = j.get('contractName')
            if name is None:
                logger.warning('%s is not a valid contract, skipping', filename)
                continue

            self.artifacts[name] = j

    def __record_deployment(self):
        """Record this deployment in a database

        :return: None
        """
        if self.__session is not None:
            logger.info('Recording deployment in database')

            self.deployment = Deployment(self.__network.name, self.__network.chain_id)
            self.__session.add(self.deployment)
            self.__session.commit()

    def __record_contract(self, name, address, args, options):
        """Record a contract's deployment in the database.

        :param name: Name of the contract
        :param address: Address the contract was deployed to
        :param args: Constructor arguments
        :param options: Transaction options
        :return: None
        """
        if self.__session is not None and self.deployment is not None:
            logger.info('Recording contract %s:%s in database', name, address)

            artifact = self.artifacts[name]
            contract = Contract(self.deployment, name, address, artifact['abi'],
                                bytes(HexBytes(artifact_bytecode(artifact))), list(args), dict(options))
            # Already mined, the address is returned even when the record fails
            try:
                self.__session.add(contract)
                self.__session.commit()
            except SQLAlchemyError:
                logger.exception('Could not record contract %s:%s in database', name, address)
                self.__session.rollback()

    def __mark_deployment_success(self):
        """Mark a deployment as having succeeded

        :return: None
        """
        if self.__session is not None and self.deployment is not None:
            self.deployment.succeeded = True
            self.__session.commit()

    def deploy(self, name, args, options):
        """Deploy a contract

        :param name: Name of the contract to deploy
        :param args: Arguments to the contract's constructor
        :param options: Transaction options for the deployment, e.g. gasLimit
        :return: Address of the deployed contract
        """
        if name in self.deployed:
            logger.warning('%s has already been deployed to %s, re-deploying as requested', name, self.deployed[name])

        txopts = {}
        for key, value in options.items():
            if key not in TXOPTS:
                raise ValueError('Unknown option {0} for {1}'.format(key, name))
            txopts[TXOPTS[key]] = value

        artifact = self.artifacts.get(name)
        if artifact is None:
            raise ValueError('Artifact {} not found, have you compiled?'.format(name))

        contract = self.__network.w3.eth.contract(abi=artifact['abi'], bytecode=artifact_bytecode(artifact))
        call = contract.constructor(*args)

        logger.info('Deploying %s', name)

        txhash = self.transact(call, txopts)
        receipt = self.__network.wait_and_check_transaction(txhash)

        address = receipt['contractAddress']
        logger.info('Deployed %s to %s', name, address)

        self.deployed[name] = address
        self.__record_contract(name, address, args, options)

        return address

    def transact(self, call, txopts=None):
        """Perform a transaction with a contract

        :param call: The function to call in this transaction
        :param txopts: Options for this transaction
        :return: Transaction hash of the transmitted transaction
        """
        if txopts is None:
            txopts = {}

        opts = dict(self.__network.txopts())
        opts.update(txopts)

        # Use our estimate but don't exceed the gas ceiling
        try:
            estimate = call.estimate_gas(dict(opts))
            gas = int(estimate * self.__network.gas_estimate_multiplier)
            opts['gas'] = min(opts['gas'], gas)
        except (ValueError, Web3Exception) as e:
            logger.warning('Error estimating gas, bravely trying anyway: %s', e)

        tx = call.build_transaction(opts)

        signed_tx = self.__network.sign_transaction(tx)
        return self.__network.send_transaction(signed_tx)

    def dump_results(self, results, f):
        """Dump deployment results to a JSON file

        :param results: DeploymentResult of the completed run
        :param f: File object to write to
        :return: None
        """
        self.__mark_deployment_success()

        output = {camel_case_to_snake_case(name) + '_address': address for name, address in results.items()}

        output['eth_uri'] = self.__network.eth_uri
        output['chain_id'] = self.__network.chain_id

        logger.info('Dumping deployment results to json')
        logger.debug('Deployment results: %s', json.dumps(output))
        json.dump(output, f, indent=2, sort_keys=True)
