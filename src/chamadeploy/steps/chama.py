import logging

from chamadeploy.network import normalize_address
from chamadeploy.steps import Ref, Step

logger = logging.getLogger(__name__)

REGISTRY_NAME = 'UserRegistry'
CONTRACT_NAME = 'Chama'
DEFAULT_GAS_LIMIT = 5000000


def chama_steps(contract_config):
    """Deployment steps for the UserRegistry and Chama contracts.

    Chama is constructed with the treasurer, the price feed and the address of the UserRegistry deployed before it.

    :param contract_config: Configuration for contracts on the network being deployed to
    :return: Ordered list of steps
    """
    config = contract_config.get(CONTRACT_NAME, {})

    treasurer = normalize_address(config.get('treasurer'))
    price_feed = normalize_address(config.get('price_feed'))
    if treasurer is None or price_feed is None:
        raise ValueError('Chama requires treasurer and price_feed addresses, check config')

    gas_limit = config.get('gas_limit', DEFAULT_GAS_LIMIT)
    logger.info('Chama treasurer: %s, price feed: %s, gas limit: %s', treasurer, price_feed, gas_limit)

    return [
        Step(REGISTRY_NAME),
        Step(CONTRACT_NAME, [treasurer, price_feed, Ref(REGISTRY_NAME)], {'gasLimit': gas_limit}),
    ]
