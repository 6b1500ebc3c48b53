import logging
import yaml

from chamadeploy.network import Network
from chamadeploy.steps import Step
from chamadeploy.steps.chama import chama_steps

logger = logging.getLogger(__name__)


class NetworkConfig(object):
    """Configuration for an Ethereum network.
    """

    def __init__(self, name, eth_uri, chain_id, gas_limit, gas_price, gas_estimate_multiplier, timeout,
                 contract_config):
        """Create a new network configuration from parts.

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

        self.validate()

    @classmethod
    def from_dict(cls, d, name, default_contract_config):
        """Create a new network configuration from a dictionary.

        :param d: Dictionary containing network configuration
        :param name: Name of the network
        :param default_contract_config: Default contract configuration for all networks
        :return: New network configuration from provided dictionary
        """
        eth_uri = d.get('eth_uri')
        chain_id = d.get('chain_id')
        gas_limit = d.get('gas_limit')
        gas_price = d.get('gas_price')
        gas_estimate_multiplier = d.get('gas_estimate_multiplier', 3)
        timeout = d.get('timeout', 240)

        # Copy default contract config and apply any overrides if applicable
        contract_config = dict(default_contract_config)
        contract_config.update(d.get('contracts', {}))

        return cls(name, eth_uri, chain_id, gas_limit, gas_price, gas_estimate_multiplier, timeout, contract_config)

    def validate(self):
        """Validate network parameters for sanity.

        :return: None
        """
        if not self.eth_uri or not self.eth_uri.startswith('http'):
            raise ValueError('Non-http RPC endpoint specified as eth_uri for network {0}'.format(self.name))
        if not isinstance(self.chain_id, int):
            raise ValueError('Invalid chain_id for network {0}'.format(self.name))
        if not isinstance(self.gas_limit, int) or self.gas_limit <= 0:
            raise ValueError('Invalid gas_limit for network {0}'.format(self.name))
        if not isinstance(self.gas_price, int) or self.gas_price < 0:
            raise ValueError('Invalid gas_price for network {0}'.format(self.name))
        if self.timeout <= 0:
            raise ValueError('Invalid timeout')

    def create(self):
        """Create a Network object based on this configuration

        :return: Network object based on this configuration
        """
        return Network(self.name, self.eth_uri, self.chain_id, self.gas_limit, self.gas_price,
                       self.gas_estimate_multiplier, self.timeout, self.contract_config)


class Config(object):
    """Global configuration for a series of deployments.
    """

    def __init__(self, network_configs, default_contract_config, steps=None):
        """Create a new Config from the provided network configurations and contract configurations.

        :param network_configs: Configurations for all networks known to this deployment
        :param default_contract_config: Default contract configurations for this deployment
        :param steps: Explicit list of deployment steps, if None the Chama migration is used
        """
        self.network_configs = network_configs
        self.default_contract_config = default_contract_config
        self.steps = steps

        self.validate()

    @classmethod
    def from_dict(cls, d):
        """Create a new Config from a dictionary

        :param d: Dictionary containing configuration
        :return: New configuration from provided dictionary
        """
        default_contract_config = d.get('contracts', {})
        network_configs = {k: NetworkConfig.from_dict(v, k, default_contract_config) for k, v in
                           d.get('networks', {}).items()}

        steps = None
        if 'steps' in d:
            steps = [Step.from_dict(s) for s in d['steps'] or []]

        return cls(network_configs, default_contract_config, steps)

    @classmethod
    def from_yaml(cls, f):
        """Create a new Config from a YAML file

        :param f: File object containing YAML configuration
        :return: New configuration from provided YAML file
        """
        return Config.from_dict(yaml.safe_load(f) or {})

    def validate(self):
        """Validate parameters for sanity

        :return: None
        """
        if not self.network_configs:
            raise ValueError('No networks configured')
        if self.steps is not None and not self.steps:
            raise ValueError('Empty list of steps configured')

    def deployment_steps(self, contract_config=None):
        """Steps to run for a network.

        :param contract_config: Contract configuration of the network, defaults to the global contract configuration
        :return: Ordered list of steps
        """
        if self.steps is not None:
            return self.steps

        if contract_config is None:
            contract_config = self.default_contract_config

        logger.info('No steps configured, using Chama migration')
        return chama_steps(contract_config)
