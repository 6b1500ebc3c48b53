import click
import logging
import sys

from chamadeploy import db, steps
from chamadeploy.config import Config
from chamadeploy.deployer import Deployer

import requests
from toposort import CircularDependencyError


@click.group()
@click.pass_context
def cli(ctx):
    logging.basicConfig(level=logging.INFO)
    ctx.ensure_object(dict)


@cli.command()
@click.option('--config', envvar='CONFIG', type=click.File('r'), required=True,
              help='Path to yaml config file defining networks and contracts')
@click.option('--network', help='Network whose contract configuration to check, defaults to the global one')
@click.pass_context
def check(ctx, config, network):
    try:
        config = Config.from_yaml(config)
    except ValueError as e:
        click.echo('Invalid configuration: {0}'.format(e))
        sys.exit(1)

    contract_config = None
    if network is not None:
        if network not in config.network_configs:
            click.echo('No such network {0} defined, check configuration'.format(network))
            sys.exit(1)
        contract_config = config.network_configs[network].contract_config

    try:
        to_deploy = config.deployment_steps(contract_config)
    except ValueError as e:
        click.echo('Invalid contract configuration: {0}'.format(e))
        sys.exit(1)

    try:
        steps.validate(to_deploy)
    except steps.DeploymentError as e:
        click.echo('Invalid deployment steps: {0}'.format(e))
        try:
            click.echo('Dependencies would be satisfied by: {0}'.format(', '.join(steps.suggest_order(to_deploy))))
        except CircularDependencyError as cycle:
            click.echo('Steps reference each other circularly: {0}'.format(cycle))
        except ValueError as unfixable:
            click.echo('No reordering can satisfy the dependencies: {0}'.format(unfixable))
        sys.exit(1)

    click.echo('Deployment order: {0}'.format(', '.join([step.name for step in to_deploy])))


@cli.command()
@click.option('--config', envvar='CONFIG', type=click.File('r'), required=True,
              help='Path to yaml config file defining networks and contracts')
@click.option('--network', required=True,
              help='What network to deploy to')
@click.option('--keyfile', envvar='KEYFILE', type=click.File('r'), required=True,
              help='Path to private key json file used to deploy')
@click.option('--password', envvar='PASSWORD', prompt=True, hide_input=True,
              help='Password used to decrypt private key')
@click.option('--db-uri', envvar='DB_URI',
              help='URI for the deployment database')
@click.option('-a', '--artifactdir', type=click.Path(exists=True, file_okay=False), default='build/contracts',
              help='Directory containing the compiled artifacts to deploy')
@click.option('-o', '--output', type=click.Path(dir_okay=False, writable=True), default='deployment.json',
              help='File to output deployment results json to')
@click.pass_context
def deploy(ctx, config, network, keyfile, password, db_uri, artifactdir, output):
    try:
        config = Config.from_yaml(config)
    except ValueError as e:
        click.echo('Invalid configuration: {0}'.format(e))
        sys.exit(1)

    if network not in config.network_configs:
        click.echo('No such network {0} defined, check configuration'.format(network))
        sys.exit(1)

    network = config.network_configs[network].create()

    try:
        to_deploy = config.deployment_steps(network.contract_config)
    except ValueError as e:
        click.echo('Invalid contract configuration: {0}'.format(e))
        sys.exit(1)

    # Misordered steps are refused before any transaction is sent
    try:
        steps.validate(to_deploy)
    except steps.DeploymentError as e:
        click.echo('Invalid deployment steps: {0}'.format(e))
        sys.exit(1)

    if not network.unlock_keyfile(keyfile, password):
        click.echo('Could not unlock keyfile, exiting')
        sys.exit(1)

    try:
        network.connect()
    except requests.exceptions.RequestException:
        click.echo('Could not connect to Ethereum client, exiting')
        sys.exit(1)

    session = None
    if db_uri is not None:
        session = db.connect(db_uri)

    deployer = Deployer(network, artifactdir, session=session)

    try:
        results = steps.run(to_deploy, deployer.deploy)
    except steps.DeploymentError as e:
        click.echo(str(e))
        for name, address in e.results.items():
            click.echo('Deployed before failure: {0} at {1}'.format(name, address))
        sys.exit(1)

    with open(output, 'w') as f:
        deployer.dump_results(results, f)

    click.echo('Deployment results written to {0}'.format(output))


if __name__ == '__main__':
    cli(obj={})
