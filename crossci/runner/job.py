import logging

from crossci.runner.step import StepRunner
from crossci.sandbox import Executor
from crossci.schemas import JobResult, JobStatus, Source
from crossci.schemas.workflow import JobDef

logger = logging.getLogger(__name__)


class JobRunner:
    job_id: str
    job: JobDef
    workflow_env: dict[str, str]
    color: bool
    source: Source
    executor: Executor | None

    def __init__(
        self,
        job_id: str,
        job: JobDef,
        *,
        executor: Executor | None,
        source: Source,
        color: bool,
        workflow_env: dict[str, str] | None = None,
    ):
        self.job_id = job_id
        self.job = job
        self.executor = executor
        self.source = source
        self.color = color
        self.workflow_env = workflow_env or {}

    async def run(self) -> JobResult:
        platform = self.job.runs_on
        if self.executor is None:
            error = f'No executor available for {platform.value} on this host'
            logger.error(f'[{self.job_id}] {error}')
            return JobResult(
                job_id=self.job_id,
                platform=platform,
                status=JobStatus.failure,
                error=error,
            )

        results = []
        for i, step in enumerate(self.job.steps):
            result = await StepRunner(i, step, self).run()
            results.append(result)
            if result.exit_code:
                logger.warning(
                    f'[{self.job_id}] Step {i} ({result.name}) failed '
                    f'with exit code {result.exit_code}'
                )
                return JobResult(
                    job_id=self.job_id,
                    platform=platform,
                    status=JobStatus.failure,
                    failing_step=i,
                    steps=results,
                )
        logger.info(f'[{self.job_id}] Succeeded')
        return JobResult(
            job_id=self.job_id,
            platform=platform,
            status=JobStatus.success,
            steps=results,
        )
