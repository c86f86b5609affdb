from enum import Enum
from fnmatch import fnmatchcase
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    StringConstraints,
    Tag,
    model_validator,
)
from typing import Annotated, Any, Union


class Platform(str, Enum):
    windows = 'windows'
    linux = 'linux'
    macos = 'macos'


# Prefixes of hosted runner labels, e.g. ubuntu-latest or windows-2022
_LABEL_PREFIXES = {
    'windows': Platform.windows,
    'linux': Platform.linux,
    'ubuntu': Platform.linux,
    'macos': Platform.macos,
    'osx': Platform.macos,
}


def parse_platform(value: Any) -> Platform:
    if isinstance(value, Platform):
        return value
    if not isinstance(value, str):
        raise ValueError('platform must be a string')
    prefix = value.strip().lower().split('-', 1)[0]
    if prefix not in _LABEL_PREFIXES:
        raise ValueError(
            f'unsupported platform {value!r}, expected one of windows, linux, macos'
        )
    return _LABEL_PREFIXES[prefix]


def _env_value(value: Any) -> Any:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    return value


EnvValue = Annotated[str, BeforeValidator(_env_value)]
Env = dict[str, EnvValue]
JobId = Annotated[str, StringConstraints(pattern=r'^[A-Za-z_][\w\-]*$')]


class _StepBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    name: str | None = None
    env: Env = {}


class ActionStep(_StepBase):
    """Installs dependencies or prepares the job environment."""

    uses: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    with_: Annotated[dict[str, Any], Field(alias='with')] = {}

    @property
    def action(self) -> str:
        return self.uses.split('@', 1)[0]

    @property
    def display_name(self) -> str:
        return self.name or self.uses


class CommandStep(_StepBase):
    run: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    working_directory: Annotated[str | None, Field(alias='working-directory')] = None

    @property
    def display_name(self) -> str:
        return self.name or self.run.strip().splitlines()[0]


def _step_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        has_uses, has_run = 'uses' in value, 'run' in value
    else:
        has_uses = isinstance(value, ActionStep)
        has_run = isinstance(value, CommandStep)
    if has_uses == has_run:
        return None
    return 'uses' if has_uses else 'run'


Step = Annotated[
    Union[Annotated[ActionStep, Tag('uses')], Annotated[CommandStep, Tag('run')]],
    Discriminator(
        _step_kind,
        custom_error_type='invalid_step',
        custom_error_message='a step must have exactly one of "uses" or "run"',
    ),
]


class JobDef(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    name: str | None = None
    runs_on: Annotated[
        Platform, BeforeValidator(parse_platform), Field(alias='runs-on')
    ]
    env: Env = {}
    steps: Annotated[tuple[Step, ...], Field(min_length=1)]


class BranchFilter(BaseModel):
    branches: list[str] | None = None

    def matches(self, branch: str) -> bool:
        if not self.branches:
            return True
        return any(fnmatchcase(branch, pattern) for pattern in self.branches)


class Triggers(BaseModel):
    push: BranchFilter | None = None
    pull_request: BranchFilter | None = None

    @model_validator(mode='before')
    @classmethod
    def v_shorthand(cls, data: Any):
        # `on: push`, `on: [push, pull_request]` and `push:` with no body
        # all enable the event for every branch
        if isinstance(data, str):
            return {data: {}}
        if isinstance(data, list):
            return {name: {} for name in data}
        if isinstance(data, dict):
            return {k: {} if v is None else v for k, v in data.items()}
        return data

    def matches(self, event: str, branch: str) -> bool:
        if event not in ('push', 'pull_request'):
            return False
        branch_filter = getattr(self, event)
        return branch_filter is not None and branch_filter.matches(branch)


class Workflow(BaseModel):
    name: str | None = None
    on: Triggers = Triggers()
    env: Env = {}
    jobs: Annotated[dict[JobId, JobDef], Field(min_length=1)]

    @model_validator(mode='before')
    @classmethod
    def v_on_key(cls, data: Any):
        # YAML 1.1 loads a bare `on` key as boolean True
        if isinstance(data, dict) and True in data:
            data = dict(data)
            data.setdefault('on', data.pop(True))
        return data
