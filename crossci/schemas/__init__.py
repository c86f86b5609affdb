from enum import Enum
from pydantic import BaseModel, computed_field

from crossci.schemas.workflow import Platform


class JobStatus(str, Enum):
    success = 'success'
    failure = 'failure'


class Source(BaseModel):
    """Where `actions/checkout` takes the repository from."""

    url: str
    commit_sha: str | None = None


class TriggerEvent(BaseModel):
    event: str
    branch: str
    commit_sha: str
    repo_name: str
    clone_url: str
    installation_id: int | None = None


class CommandOutput(BaseModel):
    exit_code: int
    stdout: str
    stderr: str


class StepResult(BaseModel):
    index: int
    name: str
    exit_code: int
    stdout: str
    stderr: str
    duration: float


class JobResult(BaseModel):
    job_id: str
    platform: Platform
    status: JobStatus
    failing_step: int | None = None
    steps: list[StepResult] = []
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == JobStatus.success


class PipelineRun(BaseModel):
    run_id: str
    jobs: dict[str, JobResult]

    @computed_field
    @property
    def status(self) -> JobStatus:
        if self.jobs and all(job.ok for job in self.jobs.values()):
            return JobStatus.success
        return JobStatus.failure

    @property
    def ok(self) -> bool:
        return self.status == JobStatus.success
