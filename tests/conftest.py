import asyncio
import os
import tempfile
from collections import defaultdict
from pathlib import Path

import pytest

# Settings are read once, when crossci is first imported
os.environ['CROSSCI_DATA_DIR'] = tempfile.mkdtemp(prefix='crossci-tests-')
for name in ('CROSSCI_LINUX_IMAGE', 'CROSSCI_WEBHOOK_SECRET', 'CROSSCI_GH_APP_ID'):
    os.environ.pop(name, None)

from crossci.runner import Orchestrator  # noqa: E402
from crossci.sandbox import Executor  # noqa: E402
from crossci.schemas import CommandOutput  # noqa: E402

DATA_DIR = Path(__file__).parent / 'data'


class FakeExecutor(Executor):
    def __init__(self, host: 'FakeHost', platform, workdir: Path):
        self.host = host
        self.platform = platform
        self.workdir = workdir

    async def execute(self, args, env, cwd=None):
        job_id = self.workdir.name
        command = ' '.join(args)
        self.host.commands[job_id].append(command)
        self.host.envs[job_id].append(env)
        if job_id in self.host.crashing:
            raise RuntimeError('executor exploded')
        if job_id in self.host.missing_binary:
            raise FileNotFoundError(2, 'No such file or directory', args[0])

        self.host.in_flight += 1
        self.host.max_in_flight = max(self.host.max_in_flight, self.host.in_flight)
        try:
            if self.host.barrier is not None and 'barrier' in command:
                await asyncio.wait_for(self.host.barrier.wait(), 5)
            else:
                await asyncio.sleep(0.01)
        finally:
            self.host.in_flight -= 1

        for fragment in self.host.failing[job_id]:
            if fragment in command:
                return CommandOutput(
                    exit_code=1, stdout='', stderr=f'{fragment}: simulated failure\n'
                )
        return CommandOutput(exit_code=0, stdout=f'ran {command}\n', stderr='')


class FakeHost:
    """Stands in for the per-platform machines jobs would run on."""

    def __init__(self):
        self.commands = defaultdict(list)
        self.envs = defaultdict(list)
        self.failing = defaultdict(list)
        self.crashing = set()
        self.missing_binary = set()
        self.unavailable = set()
        self.barrier = None
        self.in_flight = 0
        self.max_in_flight = 0

    def fail(self, job_id: str, fragment: str):
        self.failing[job_id].append(fragment)

    def factory(self, platform, workdir):
        if platform in self.unavailable:
            return None
        return FakeExecutor(self, platform, workdir)


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def orchestrator(fake_host, tmp_path):
    return Orchestrator(
        runs_dir=tmp_path / 'runs',
        executor_factory=fake_host.factory,
        color=False,
        keep_workdirs=False,
    )


@pytest.fixture
def matrix_file():
    return DATA_DIR / 'matrix.yml'
