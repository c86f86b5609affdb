import logging
import shutil
import sys
from asyncio import create_subprocess_exec
from pathlib import Path
from subprocess import CalledProcessError, DEVNULL, PIPE

from crossci.schemas.workflow import Platform

logger = logging.getLogger(__name__)


def get_bin(name: str) -> str:
    return shutil.which(name) or name


BASH = get_bin('bash')
GIT = get_bin('git')
PODMAN = get_bin('podman')
PWSH = get_bin('pwsh')


def current_platform() -> Platform:
    if sys.platform.startswith('win'):
        return Platform.windows
    if sys.platform == 'darwin':
        return Platform.macos
    return Platform.linux


async def async_check_output(*args: str | Path, cwd: Path | str) -> str:
    logger.debug(f'Running {args}')
    p = await create_subprocess_exec(*args, cwd=cwd, stdin=DEVNULL, stdout=PIPE)
    stdout, _ = await p.communicate()
    if p.returncode:
        logger.error(f'Process exited with code {p.returncode}')
        raise CalledProcessError(p.returncode, [str(x) for x in args])
    return stdout.decode()
