import shlex
from typing import Any

from crossci.exceptions import ConfigurationError
from crossci.schemas import Source
from crossci.schemas.workflow import ActionStep, Platform


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.replace(',', ' ').split()
    return [str(x) for x in value]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


class Action:
    platforms: frozenset[Platform] = frozenset(Platform)
    required: tuple[str, ...] = ()
    # Commands that run on the orchestrator host, in the job's directory,
    # even when the job itself runs in a container
    runs_on_host: bool = False

    def validate(self, step: ActionStep, platform: Platform):
        if platform not in self.platforms:
            supported = ', '.join(sorted(p.value for p in self.platforms))
            raise ConfigurationError(
                f'{step.uses} is not available on {platform.value} (supported: {supported})'
            )
        missing = [key for key in self.required if key not in step.with_]
        if missing:
            raise ConfigurationError(
                f'{step.uses} is missing required parameters: {", ".join(missing)}'
            )

    def commands(
        self, step: ActionStep, platform: Platform, source: Source
    ) -> list[list[str]]:
        raise NotImplementedError


class Checkout(Action):
    runs_on_host = True

    def commands(self, step, platform, source):
        res = [['git', 'clone', '--quiet', source.url, '.']]
        if source.commit_sha:
            res.append(['git', 'switch', '--quiet', '--detach', source.commit_sha])
        return res


class Chocolatey(Action):
    platforms = frozenset({Platform.windows})
    required = ('args',)

    def commands(self, step, platform, source):
        args = shlex.split(str(step.with_['args']))
        if not {'-y', '--yes', '--confirm'} & set(args):
            args.append('--yes')
        return [['choco', *args]]


class RustToolchain(Action):
    required = ('toolchain',)

    def commands(self, step, platform, source):
        toolchain = str(step.with_['toolchain'])
        res = [['rustup', 'toolchain', 'install', toolchain]]
        if components := _as_list(step.with_.get('components')):
            res.append(['rustup', 'component', 'add', '--toolchain', toolchain, *components])
        if _as_bool(step.with_.get('override', False)):
            res.append(['rustup', 'override', 'set', toolchain])
        return res


class InstallPackages(Action):
    """Installs packages with the platform package manager."""

    required = ('packages',)

    def validate(self, step, platform):
        super().validate(step, platform)
        if not _as_list(step.with_['packages']):
            raise ConfigurationError(f'{step.uses} needs at least one package')

    def commands(self, step, platform, source):
        packages = _as_list(step.with_['packages'])
        update = _as_bool(step.with_.get('update', False))
        if platform == Platform.linux:
            prefix = ['sudo'] if _as_bool(step.with_.get('sudo', True)) else []
            res = [[*prefix, 'apt-get', 'update']] if update else []
            res.append([*prefix, 'apt-get', 'install', '--yes', *packages])
            return res
        if platform == Platform.windows:
            return [['choco', 'install', '--yes', *packages]]
        res = [['brew', 'update']] if update else []
        res.append(['brew', 'install', *packages])
        return res


ACTIONS: dict[str, Action] = {
    'actions/checkout': Checkout(),
    'crazy-max/ghaction-chocolatey': Chocolatey(),
    'actions-rs/toolchain': RustToolchain(),
    'install': InstallPackages(),
}


def get_action(step: ActionStep) -> Action:
    try:
        return ACTIONS[step.action]
    except KeyError:
        raise ConfigurationError(f'Unknown action {step.uses!r}') from None
