import logging
from time import monotonic
from typing import TYPE_CHECKING

from crossci.actions import get_action
from crossci.const import COLOR_ENV, NO_COLOR_ENV
from crossci.schemas import CommandOutput, StepResult
from crossci.schemas.workflow import ActionStep, CommandStep

if TYPE_CHECKING:
    from crossci.runner.job import JobRunner

logger = logging.getLogger(__name__)


def color_env(color: bool) -> dict[str, str]:
    return dict(COLOR_ENV if color else NO_COLOR_ENV)


class StepRunner:
    index: int
    step: ActionStep | CommandStep
    job_runner: 'JobRunner'

    def __init__(
        self, index: int, step: ActionStep | CommandStep, job_runner: 'JobRunner'
    ):
        self.index = index
        self.step = step
        self.job_runner = job_runner

    @property
    def env(self) -> dict[str, str]:
        # Explicit workflow, job and step values override the color preference
        return (
            color_env(self.job_runner.color)
            | self.job_runner.workflow_env
            | self.job_runner.job.env
            | self.step.env
        )

    async def _run_commands(self) -> CommandOutput:
        executor = self.job_runner.executor
        env = self.env
        if isinstance(self.step, CommandStep):
            return await executor.execute(
                executor.shell_command(self.step.run),
                env,
                self.step.working_directory,
            )

        action = get_action(self.step)
        if action.runs_on_host:
            executor = executor.host_side()
        stdout, stderr = [], []
        exit_code = 0
        for args in action.commands(
            self.step, self.job_runner.job.runs_on, self.job_runner.source
        ):
            output = await executor.execute(args, env)
            stdout.append(output.stdout)
            stderr.append(output.stderr)
            exit_code = output.exit_code
            if exit_code:
                break
        return CommandOutput(
            exit_code=exit_code, stdout=''.join(stdout), stderr=''.join(stderr)
        )

    async def run(self) -> StepResult:
        name = self.step.display_name
        logger.info(f'[{self.job_runner.job_id}] Step {self.index}: {name}')
        started = monotonic()
        try:
            output = await self._run_commands()
        except OSError as e:
            # Shell or package manager missing on this platform
            logger.error(f'[{self.job_runner.job_id}] Cannot run {name!r}: {e}')
            output = CommandOutput(exit_code=127, stdout='', stderr=str(e))
        return StepResult(
            index=self.index,
            name=name,
            exit_code=output.exit_code,
            stdout=output.stdout,
            stderr=output.stderr,
            duration=monotonic() - started,
        )
