import pytest
from toposort import CircularDependencyError

from chamadeploy import steps
from chamadeploy.steps import (DeploymentFailed, DeploymentResult, DuplicateStep, Ref, Step, UnresolvedDependency,
                               run, suggest_order, validate)

from conftest import FakeDeploy


def test_run_records_every_step(fake_deploy):
    results = run([Step('A'), Step('B'), Step('C', [Ref('A'), Ref('B')])], fake_deploy)

    assert set(results) == {'A', 'B', 'C'}
    assert len(results) == 3
    assert fake_deploy.names == ['A', 'B', 'C']


def test_run_resolves_back_references():
    deploy = FakeDeploy(addresses={'A': '0xA1'})

    results = run([Step('A', []), Step('B', ['x', Ref('A')])], deploy)

    assert deploy.calls[1].name == 'B'
    assert deploy.calls[1].args == ['x', '0xA1']
    assert results['A'] == '0xA1'


def test_literals_pass_through_unchanged(fake_deploy):
    run([Step('A', ['x', 42, 0])], fake_deploy)

    assert fake_deploy.calls[0].args == ['x', 42, 0]


def test_unresolved_dependency_never_deploys(fake_deploy):
    with pytest.raises(UnresolvedDependency) as excinfo:
        run([Step('B', [Ref('A')])], fake_deploy)

    assert excinfo.value.step == 'B'
    assert excinfo.value.missing_name == 'A'
    assert fake_deploy.calls == []


def test_forward_reference_is_unresolved(fake_deploy):
    with pytest.raises(UnresolvedDependency) as excinfo:
        run([Step('A', [Ref('B')]), Step('B')], fake_deploy)

    assert excinfo.value.step == 'A'
    assert excinfo.value.missing_name == 'B'
    assert fake_deploy.calls == []


def test_self_reference_is_unresolved(fake_deploy):
    with pytest.raises(UnresolvedDependency):
        run([Step('A', [Ref('A')])], fake_deploy)

    assert fake_deploy.calls == []


def test_unresolved_dependency_halts_after_earlier_steps(fake_deploy):
    with pytest.raises(UnresolvedDependency) as excinfo:
        run([Step('A'), Step('B', [Ref('Z')]), Step('C')], fake_deploy)

    assert fake_deploy.names == ['A']
    assert list(excinfo.value.results) == ['A']


def test_failed_deploy_halts_run():
    deploy = FakeDeploy(fail_on='B')

    with pytest.raises(DeploymentFailed) as excinfo:
        run([Step('A'), Step('B', [Ref('A')]), Step('C')], deploy)

    assert excinfo.value.step == 'B'
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert excinfo.value.__cause__ is excinfo.value.cause
    assert deploy.names == ['A', 'B']
    assert dict(excinfo.value.results) == {'A': '0x' + '0' * 39 + '1'}


def test_errors_share_base_class():
    assert issubclass(UnresolvedDependency, steps.DeploymentError)
    assert issubclass(DeploymentFailed, steps.DeploymentError)
    assert issubclass(DuplicateStep, steps.DeploymentError)


def test_duplicate_step_is_not_deployed_twice(fake_deploy):
    with pytest.raises(DuplicateStep) as excinfo:
        run([Step('A'), Step('A')], fake_deploy)

    assert excinfo.value.step == 'A'
    assert fake_deploy.names == ['A']


def test_options_passed_to_deploy(fake_deploy):
    run([Step('A'), Step('B', options={'gasLimit': 5000000})], fake_deploy)

    assert fake_deploy.calls[0].options == {}
    assert fake_deploy.calls[1].options == {'gasLimit': 5000000}


def test_options_are_not_shared_with_deploy():
    def deploy(name, args, options):
        options['gasLimit'] = 1
        return '0xA1'

    step = Step('A', options={'gasLimit': 5000000})
    run([step], deploy)

    assert step.options == {'gasLimit': 5000000}


def test_empty_run(fake_deploy):
    results = run([], fake_deploy)

    assert len(results) == 0
    assert fake_deploy.calls == []


def test_deployment_result_is_write_once():
    results = DeploymentResult()
    results.record('A', '0xA1')

    with pytest.raises(KeyError):
        results.record('A', '0xA2')

    with pytest.raises(TypeError):
        results['A'] = '0xA2'

    assert results['A'] == '0xA1'


def test_step_from_dict():
    step = Step.from_dict({'name': 'Chama', 'args': ['0xabc', 3, {'ref': 'UserRegistry'}],
                           'options': {'gasLimit': 5000000}})

    assert step.name == 'Chama'
    assert step.args == ['0xabc', 3, Ref('UserRegistry')]
    assert step.options == {'gasLimit': 5000000}
    assert step.dependencies == {'UserRegistry'}


def test_step_from_dict_defaults():
    step = Step.from_dict({'name': 'UserRegistry'})

    assert step.args == []
    assert step.options == {}


@pytest.mark.parametrize('d', [
    {},
    {'args': []},
    {'name': 'Chama', 'args': [{'reference': 'UserRegistry'}]},
    {'name': 'Chama', 'args': [{'ref': 'UserRegistry', 'extra': 1}]},
    {'name': 'Chama', 'args': [{'ref': ['UserRegistry']}]},
    {'name': 'Chama', 'args': 'UserRegistry'},
    {'name': 'Chama', 'options': 5},
    {'name': ['Chama']},
    'UserRegistry',
    ['UserRegistry'],
])
def test_step_from_dict_invalid(d):
    with pytest.raises(ValueError):
        Step.from_dict(d)


def test_validate():
    validate([Step('A'), Step('B', [Ref('A')])])

    with pytest.raises(UnresolvedDependency) as excinfo:
        validate([Step('B', [Ref('A')]), Step('A')])
    assert excinfo.value.missing_name == 'A'

    with pytest.raises(DuplicateStep):
        validate([Step('A'), Step('A')])


def test_suggest_order():
    assert suggest_order([Step('B', [Ref('A')]), Step('A')]) == ['A', 'B']


def test_suggest_order_missing_step():
    with pytest.raises(ValueError) as excinfo:
        suggest_order([Step('B', [Ref('Z')])])

    assert 'Z' in str(excinfo.value)


def test_suggest_order_self_reference():
    with pytest.raises(ValueError):
        suggest_order([Step('A', [Ref('A')])])


def test_suggest_order_repeated_name():
    with pytest.raises(ValueError):
        suggest_order([Step('B', [Ref('A')]), Step('A'), Step('A')])


def test_suggest_order_circular():
    with pytest.raises(CircularDependencyError):
        suggest_order([Step('A', [Ref('B')]), Step('B', [Ref('A')])])
