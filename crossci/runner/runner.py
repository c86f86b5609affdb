import asyncio
import logging
import shutil
import uuid
from collections.abc import Iterable, Mapping
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Callable

import yaml
from pydantic import ValidationError
from yaml import YAMLError

from crossci.actions import get_action
from crossci.config import config
from crossci.exceptions import ConfigurationError
from crossci.runner.job import JobRunner
from crossci.sandbox import Executor, executor_for
from crossci.schemas import JobResult, JobStatus, PipelineRun, Source
from crossci.schemas.workflow import ActionStep, JobDef, Platform, Workflow

logger = logging.getLogger(__name__)

JobsInput = Workflow | Mapping[str, JobDef | dict[str, Any]]
ExecutorFactory = Callable[[Platform, Path], Executor | None]


def parse_workflow(text: str) -> Workflow:
    try:
        return Workflow.model_validate(yaml.safe_load(text))
    except (YAMLError, ValidationError) as e:
        raise ConfigurationError(str(e))


def load_workflow(path: str | Path) -> Workflow:
    file = Path(path)
    if not file.is_file():
        raise ConfigurationError(f'Workflow file {file} not found')
    return parse_workflow(file.read_text())


def validate_jobs(jobs: JobsInput) -> dict[str, JobDef]:
    """Checks everything that can be checked before any job starts."""
    if isinstance(jobs, Workflow):
        validated = jobs.jobs
    else:
        if not isinstance(jobs, Mapping):
            raise ConfigurationError('Jobs must be a mapping of job id to definition')
        try:
            validated = Workflow.model_validate({'jobs': dict(jobs)}).jobs
        except ValidationError as e:
            raise ConfigurationError(str(e))

    for job_id, job in validated.items():
        for i, step in enumerate(job.steps):
            if not isinstance(step, ActionStep):
                continue
            try:
                get_action(step).validate(step, job.runs_on)
            except ConfigurationError as e:
                raise ConfigurationError(f'Job {job_id!r}, step {i}: {e}') from None
    return validated


def select_jobs(workflow: Workflow, names: Iterable[str]) -> dict[str, JobDef]:
    names = list(names)
    if not names:
        return dict(workflow.jobs)
    unknown = [name for name in names if name not in workflow.jobs]
    if unknown:
        raise ConfigurationError(f'Unknown jobs: {", ".join(unknown)}')
    return {name: workflow.jobs[name] for name in names}


class Orchestrator:
    source: Source
    color: bool
    runs_dir: Path
    keep_workdirs: bool
    max_parallel_jobs: int | None
    executor_factory: ExecutorFactory

    def __init__(
        self,
        *,
        source: Source | None = None,
        color: bool | None = None,
        runs_dir: Path | None = None,
        keep_workdirs: bool | None = None,
        max_parallel_jobs: int | None = None,
        executor_factory: ExecutorFactory = executor_for,
    ):
        self.source = source or Source(url=str(Path.cwd()))
        self.color = config.color if color is None else color
        self.runs_dir = runs_dir or config.runs_dir
        self.keep_workdirs = (
            config.keep_workdirs if keep_workdirs is None else keep_workdirs
        )
        self.max_parallel_jobs = max_parallel_jobs or config.max_parallel_jobs
        self.executor_factory = executor_factory

    async def run_job(
        self,
        job_id: str,
        job: JobDef | dict[str, Any],
        env: Mapping[str, str] | None = None,
        run_id: str | None = None,
    ) -> JobResult:
        job = validate_jobs({job_id: job})[job_id]
        standalone = run_id is None
        run_dir = self.runs_dir / (run_id or uuid.uuid4().hex[:12])
        workdir = run_dir / job_id
        workdir.mkdir(parents=True)
        try:
            job_runner = JobRunner(
                job_id,
                job,
                executor=self.executor_factory(job.runs_on, workdir),
                source=self.source,
                color=self.color,
                workflow_env=dict(env or {}),
            )
            return await job_runner.run()
        finally:
            if not self.keep_workdirs:
                self._remove_workdir(run_dir if standalone else workdir)

    async def submit(
        self, jobs: JobsInput, env: Mapping[str, str] | None = None
    ) -> PipelineRun:
        if env is None and isinstance(jobs, Workflow):
            env = jobs.env
        validated = validate_jobs(jobs)
        run_id = uuid.uuid4().hex[:12]
        logger.info(f'Run {run_id}: starting {len(validated)} job(s)')

        semaphore = (
            asyncio.Semaphore(self.max_parallel_jobs)
            if self.max_parallel_jobs
            else nullcontext()
        )

        async def run_one(job_id: str, job: JobDef) -> JobResult:
            async with semaphore:
                return await self.run_job(job_id, job, env, run_id)

        outcomes = await asyncio.gather(
            *(run_one(job_id, job) for job_id, job in validated.items()),
            return_exceptions=True,
        )

        results = {}
        for (job_id, job), outcome in zip(validated.items(), outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f'[{job_id}] Crashed: {outcome!r}', exc_info=outcome
                )
                outcome = JobResult(
                    job_id=job_id,
                    platform=job.runs_on,
                    status=JobStatus.failure,
                    error=str(outcome) or type(outcome).__name__,
                )
            results[job_id] = outcome

        if not self.keep_workdirs:
            self._remove_workdir(self.runs_dir / run_id)
        run = PipelineRun(run_id=run_id, jobs=results)
        logger.info(f'Run {run_id} finished: {run.status.value}')
        return run

    @staticmethod
    def _remove_workdir(path: Path):
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning(f'Could not remove {path}: {e}')


async def submit(jobs: JobsInput, **kwargs) -> PipelineRun:
    return await Orchestrator(**kwargs).submit(jobs)


async def run_job(job_id: str, job: JobDef | dict[str, Any], **kwargs) -> JobResult:
    return await Orchestrator(**kwargs).run_job(job_id, job)
