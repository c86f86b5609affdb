import logging
import os
from asyncio import create_subprocess_exec
from pathlib import Path
from subprocess import DEVNULL, PIPE
from typing import Sequence

from crossci.config import Config, config
from crossci.const import CONTAINER_WORKDIR
from crossci.schemas import CommandOutput
from crossci.schemas.workflow import Platform
from crossci.utils import BASH, PODMAN, PWSH, current_platform

logger = logging.getLogger(__name__)

# Native commands exiting non-zero stop the script, and the last exit code
# becomes the script's own
PWSH_PROLOGUE = (
    "$ErrorActionPreference = 'stop'\n"
    '$PSNativeCommandUseErrorActionPreference = $true\n'
)
PWSH_EPILOGUE = (
    '\nif ((Test-Path -LiteralPath variable:\\LASTEXITCODE)) { exit $LASTEXITCODE }'
)


async def _exec(
    args: Sequence[str], *, cwd: Path, env: dict[str, str] | None
) -> CommandOutput:
    logger.debug(f'Running {list(args)} in {cwd}')
    p = await create_subprocess_exec(
        *args,
        cwd=cwd,
        stdin=DEVNULL,
        stdout=PIPE,
        stderr=PIPE,
        env=env,
    )
    stdout, stderr = await p.communicate()
    return CommandOutput(
        exit_code=p.returncode,
        stdout=stdout.decode(errors='replace'),
        stderr=stderr.decode(errors='replace'),
    )


class Executor:
    """Runs the commands of one job inside that job's own environment."""

    platform: Platform
    workdir: Path

    def shell_command(self, script: str) -> list[str]:
        if self.platform == Platform.windows:
            return [
                PWSH,
                '-NoProfile',
                '-NonInteractive',
                '-Command',
                PWSH_PROLOGUE + script + PWSH_EPILOGUE,
            ]
        return [BASH, '-c', 'set -e\n' + script]

    def host_side(self) -> 'Executor':
        return self

    async def execute(
        self, args: Sequence[str], env: dict[str, str], cwd: str | None = None
    ) -> CommandOutput:
        raise NotImplementedError


class LocalExecutor(Executor):
    def __init__(self, workdir: Path, platform: Platform | None = None):
        self.workdir = workdir
        self.platform = platform or current_platform()

    async def execute(self, args, env, cwd=None):
        return await _exec(
            args,
            cwd=self.workdir / cwd if cwd else self.workdir,
            env=os.environ | env,
        )


class ContainerExecutor(Executor):
    """Runs linux jobs in a throwaway podman container.

    The job directory is bind-mounted at /workspace, so files written by
    host-side steps such as checkout are visible inside the container.
    """

    platform = Platform.linux
    TMPFSES = ['/tmp', '/var/tmp']

    _rw_binds: list[tuple[str, str]]

    def __init__(self, workdir: Path, image: str):
        self.workdir = workdir
        self._image = image
        self._rw_binds = [(str(workdir.absolute()), CONTAINER_WORKDIR)]

    def shell_command(self, script: str) -> list[str]:
        return ['bash', '-c', 'set -e\n' + script]

    def host_side(self) -> Executor:
        return LocalExecutor(self.workdir)

    def build_cmd_prefix(self, env: dict[str, str], cwd: str | None = None) -> list[str]:
        res = [PODMAN, 'run', '--rm']
        for tmpfs in self.TMPFSES:
            res.extend(('--mount', f'type=tmpfs,destination={tmpfs}'))
        workdir = CONTAINER_WORKDIR
        if cwd:
            workdir = f'{CONTAINER_WORKDIR}/{cwd}'
        res.extend(('-w', workdir))
        for src, dst in self._rw_binds:
            res.extend(('-v', f'{src}:{dst}'))
        for k, v in env.items():
            res.extend(('-e', f'{k}={v}'))
        res.append(self._image)
        logger.debug(f'Generated sandbox prefix {res}')
        return res

    async def execute(self, args, env, cwd=None):
        return await _exec(
            [*self.build_cmd_prefix(env, cwd), *args], cwd=self.workdir, env=None
        )


def executor_for(
    platform: Platform, workdir: Path, settings: Config = config
) -> Executor | None:
    host = current_platform()
    if platform == Platform.linux and settings.linux_image:
        if settings.always_use_sandbox or host != Platform.linux:
            return ContainerExecutor(workdir, settings.linux_image)
    if platform == host:
        return LocalExecutor(workdir, platform)
    return None
