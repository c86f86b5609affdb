import json

import pytest

from crossci.exceptions import ConfigurationError
from crossci.runner import load_workflow, parse_workflow
from crossci.schemas.workflow import (
    ActionStep,
    CommandStep,
    Platform,
    Triggers,
    parse_platform,
)


def test_load_matrix(matrix_file):
    wf = load_workflow(matrix_file)

    assert list(wf.jobs) == ['lint', 'windows_stable', 'linux_stable', 'macos_stable']
    assert wf.jobs['lint'].runs_on == Platform.linux
    assert wf.jobs['windows_stable'].runs_on == Platform.windows
    assert wf.jobs['macos_stable'].runs_on == Platform.macos
    assert wf.env == {'CARGO_TERM_COLOR': 'always'}
    assert wf.on.push.branches == ['master']
    assert wf.on.pull_request.branches == ['master']

    lint_steps = wf.jobs['lint'].steps
    assert isinstance(lint_steps[0], ActionStep)
    assert lint_steps[1].action == 'actions-rs/toolchain'
    assert lint_steps[1].with_ == {'toolchain': 'nightly', 'override': True}
    assert isinstance(lint_steps[3], CommandStep)
    assert lint_steps[3].display_name == 'check rustfmt'
    assert lint_steps[2].display_name == 'rustup component add rustfmt'
    assert wf.jobs['windows_stable'].steps[2].display_name == 'actions/checkout@v2'


@pytest.mark.parametrize(
    'label, expected',
    [
        ('ubuntu-latest', Platform.linux),
        ('ubuntu-22.04', Platform.linux),
        ('linux', Platform.linux),
        ('windows-latest', Platform.windows),
        ('windows-2022', Platform.windows),
        ('macos-latest', Platform.macos),
        ('macOS-14', Platform.macos),
    ],
)
def test_runner_labels(label, expected):
    assert parse_platform(label) == expected


def test_unknown_platform():
    with pytest.raises(ConfigurationError, match='unsupported platform'):
        parse_workflow(
            '''
            jobs:
              build:
                runs-on: freebsd-13
                steps:
                  - run: make
            '''
        )


@pytest.mark.parametrize(
    'step',
    [
        '{uses: actions/checkout@v2, run: make}',
        '{name: nothing to do}',
    ],
)
def test_step_needs_exactly_one_kind(step):
    with pytest.raises(ConfigurationError, match='exactly one of'):
        parse_workflow(
            f'''
            jobs:
              build:
                runs-on: linux
                steps:
                  - {step}
            '''
        )


def test_job_needs_steps():
    with pytest.raises(ConfigurationError):
        parse_workflow('jobs: {build: {runs-on: linux, steps: []}}')


def test_job_needs_platform():
    with pytest.raises(ConfigurationError, match='runs-on'):
        parse_workflow('jobs: {build: {steps: [{run: make}]}}')


def test_empty_jobs():
    with pytest.raises(ConfigurationError):
        parse_workflow('jobs: {}')


def test_unknown_job_keys_rejected():
    with pytest.raises(ConfigurationError, match='timeout'):
        parse_workflow(
            'jobs: {build: {runs-on: linux, timeout: 5, steps: [{run: make}]}}'
        )


def test_invalid_job_id():
    with pytest.raises(ConfigurationError):
        parse_workflow('jobs: {"1st build": {runs-on: linux, steps: [{run: make}]}}')


def test_env_values_are_strings():
    wf = parse_workflow(
        '''
        env:
          RUST_BACKTRACE: 1
          CI: true
        jobs:
          build:
            runs-on: linux
            env: {JOBS: 4}
            steps:
              - run: make
                env: {VERBOSE: false}
        '''
    )
    assert wf.env == {'RUST_BACKTRACE': '1', 'CI': 'true'}
    assert wf.jobs['build'].env == {'JOBS': '4'}
    assert wf.jobs['build'].steps[0].env == {'VERBOSE': 'false'}


def test_working_directory_alias():
    wf = parse_workflow(
        'jobs: {build: {runs-on: linux, steps: [{run: make, working-directory: sub}]}}'
    )
    assert wf.jobs['build'].steps[0].working_directory == 'sub'


def test_bad_yaml():
    with pytest.raises(ConfigurationError):
        parse_workflow('jobs: [unclosed')


def test_missing_workflow_file(tmp_path):
    with pytest.raises(ConfigurationError, match='not found'):
        load_workflow(tmp_path / 'crossci.yml')


def test_steps_are_immutable(matrix_file):
    step = load_workflow(matrix_file).jobs['macos_stable'].steps[1]
    with pytest.raises(ValueError):
        step.run = 'rm -rf /'


def test_trigger_matching(matrix_file):
    on = load_workflow(matrix_file).on

    assert on.matches('push', 'master')
    assert on.matches('pull_request', 'master')
    assert not on.matches('push', 'feature/x')
    assert not on.matches('pull_request', 'develop')
    assert not on.matches('release', 'master')


def test_trigger_shorthands():
    assert Triggers.model_validate('push').matches('push', 'anything')
    assert not Triggers.model_validate('push').matches('pull_request', 'anything')

    both = Triggers.model_validate(['push', 'pull_request'])
    assert both.matches('push', 'a') and both.matches('pull_request', 'b')

    no_body = Triggers.model_validate({'push': None})
    assert no_body.matches('push', 'main')


def test_trigger_branch_globs():
    on = Triggers.model_validate({'push': {'branches': ['release/*', 'main']}})
    assert on.matches('push', 'release/1.0')
    assert on.matches('push', 'main')
    assert not on.matches('push', 'mainline')


def test_no_triggers_never_match():
    wf = parse_workflow('jobs: {build: {runs-on: linux, steps: [{run: make}]}}')
    assert not wf.on.matches('push', 'master')


@pytest.mark.parametrize('script', ['   ', '\n\n', ' \n\t\n'])
def test_blank_run_rejected(script):
    with pytest.raises(ConfigurationError, match='run'):
        parse_workflow(
            'jobs: {build: {runs-on: linux, steps: [{run: %s}, {run: make}]}}'
            % json.dumps(script)
        )
