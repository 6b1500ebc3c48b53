import logging
from collections.abc import Mapping

from toposort import toposort_flatten

logger = logging.getLogger(__name__)


class Ref(object):
    """Back-reference to the address produced by an earlier deployment step.
    """

    def __init__(self, name):
        """Create a new reference.

        :param name: Name of the step whose address should be substituted
        """
        self.name = name

    def __eq__(self, other):
        return isinstance(other, Ref) and other.name == self.name

    def __hash__(self):
        return hash(('Ref', self.name))

    def __repr__(self):
        return 'Ref({0!r})'.format(self.name)


class Step(object):
    """Deployment step for a contract
    """

    def __init__(self, name, args=None, options=None):
        """Create a new deployment step.

        :param name: Name of the contract artifact to deploy
        :param args: Constructor arguments, literals or Ref instances
        :param options: Transaction options for the deployment, e.g. gasLimit
        """
        self.name = name
        self.args = list(args or [])
        self.options = dict(options or {})

    @classmethod
    def from_dict(cls, d):
        """Create a new step from a dictionary, as loaded from configuration.

        Back-references are written as ``{ref: <name>}``.

        :param d: Dictionary containing the step definition
        :return: New step from provided dictionary
        """
        if not isinstance(d, dict):
            raise ValueError('Deployment step {0!r} is not a mapping'.format(d))

        name = d.get('name')
        if not name or not isinstance(name, str):
            raise ValueError('Deployment step without a name')

        raw_args = d.get('args') or []
        if not isinstance(raw_args, list):
            raise ValueError('Arguments for step {0} must be a list'.format(name))

        args = []
        for arg in raw_args:
            if isinstance(arg, dict):
                if set(arg.keys()) != {'ref'} or not isinstance(arg['ref'], str):
                    raise ValueError('Invalid argument {0} for step {1}'.format(arg, name))
                arg = Ref(arg['ref'])
            args.append(arg)

        options = d.get('options') or {}
        if not isinstance(options, dict):
            raise ValueError('Options for step {0} must be a mapping'.format(name))

        return cls(name, args, options)

    @property
    def dependencies(self):
        """Names of the steps this step references."""
        return {arg.name for arg in self.args if isinstance(arg, Ref)}

    def resolve(self, results):
        """Substitute back-references with the addresses already deployed.

        :param results: DeploymentResult of the steps run so far
        :return: List of constructor arguments with references resolved
        """
        resolved = []
        for arg in self.args:
            if isinstance(arg, Ref):
                if arg.name not in results:
                    raise UnresolvedDependency(self.name, arg.name, results)
                arg = results[arg.name]
            resolved.append(arg)

        return resolved

    def __repr__(self):
        return 'Step({0!r}, {1!r}, {2!r})'.format(self.name, self.args, self.options)


class DeploymentResult(Mapping):
    """Addresses of deployed contracts keyed by step name, each written once.
    """

    def __init__(self):
        self.__addresses = {}

    def record(self, name, address):
        """Record the address a step deployed to.

        :param name: Name of the step
        :param address: Address of the deployed contract
        :return: None
        """
        if name in self.__addresses:
            raise KeyError('{0} already recorded at {1}'.format(name, self.__addresses[name]))

        self.__addresses[name] = address

    def __getitem__(self, name):
        return self.__addresses[name]

    def __iter__(self):
        return iter(self.__addresses)

    def __len__(self):
        return len(self.__addresses)

    def __repr__(self):
        return 'DeploymentResult({0!r})'.format(self.__addresses)


class DeploymentError(Exception):
    """Base class for failures that stop a deployment run.
    """

    def __init__(self, step, results, message):
        super().__init__(message)
        self.step = step
        self.results = results


class UnresolvedDependency(DeploymentError):
    """A step references a name that no earlier step has deployed.
    """

    def __init__(self, step, missing_name, results):
        super().__init__(step, results,
                         'Step {0} references {1}, which has not been deployed'.format(step, missing_name))
        self.missing_name = missing_name


class DuplicateStep(DeploymentError):
    """A step would overwrite the address of an earlier step with the same name.
    """

    def __init__(self, step, results):
        super().__init__(step, results, 'Step {0} has already been deployed in this run'.format(step))


class DeploymentFailed(DeploymentError):
    """The deploy call for a step raised.
    """

    def __init__(self, step, cause, results):
        super().__init__(step, results, 'Deployment of {0} failed: {1}'.format(step, cause))
        self.cause = cause


def validate(steps):
    """Check a list of steps for references to names not deployed by an earlier step, without deploying.

    :param steps: Ordered list of steps
    :return: None
    """
    seen = set()
    for step in steps:
        if step.name in seen:
            raise DuplicateStep(step.name, DeploymentResult())

        for dependency in sorted(step.dependencies):
            if dependency not in seen:
                raise UnresolvedDependency(step.name, dependency, DeploymentResult())

        seen.add(step.name)


def suggest_order(steps):
    """Compute an order of step names that satisfies every back-reference.

    Only used to report how invalid input could be reordered, run never reorders.

    :param steps: List of steps
    :return: List of step names, dependencies first
    """
    names = [step.name for step in steps]
    if len(set(names)) != len(names):
        raise ValueError('Step names are repeated, no order can deploy each once')

    for step in steps:
        if step.name in step.dependencies:
            raise ValueError('Step {0} references itself'.format(step.name))

        missing = step.dependencies - set(names)
        if missing:
            raise ValueError('Step {0} references {1}, which no step deploys'.format(
                step.name, ', '.join(sorted(missing))))

    depgraph = {step.name: step.dependencies for step in steps}
    return toposort_flatten(depgraph)


def run(steps, deploy):
    """Run all deployment steps in order.

    :param steps: Ordered list of steps to perform
    :param deploy: Callable taking the contract name, constructor arguments and options, returning an address
    :return: DeploymentResult with the address of every step
    """
    results = DeploymentResult()

    logger.info('Deployment order: %s', ', '.join([step.name for step in steps]))

    for step in steps:
        if step.name in results:
            raise DuplicateStep(step.name, results)

        args = step.resolve(results)

        logger.info('Running deployment for %s', step.name)
        try:
            address = deploy(step.name, args, dict(step.options))
        except Exception as e:
            logger.error('Deployment of %s failed, %s of %s steps completed', step.name, len(results), len(steps))
            raise DeploymentFailed(step.name, e, results) from e

        results.record(step.name, address)

    return results
