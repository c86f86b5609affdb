from crossci.const import OUTPUT_TAIL
from crossci.schemas import JobResult, PipelineRun

GREEN = '\033[32m'
RED = '\033[31m'
BOLD = '\033[1m'
RESET = '\033[0m'


def _paint(text: str, code: str, color: bool) -> str:
    return f'{code}{text}{RESET}' if color else text


def _tail(text: str) -> str:
    text = text.rstrip()
    if len(text) > OUTPUT_TAIL:
        return '...' + text[-OUTPUT_TAIL:]
    return text


def describe_job(job: JobResult) -> str:
    if job.ok:
        return f'{job.job_id} ({job.platform.value}): success'
    if job.failing_step is not None:
        step = job.steps[job.failing_step]
        return (
            f'{job.job_id} ({job.platform.value}): failed at step '
            f'{job.failing_step} {step.name!r} (exit code {step.exit_code})'
        )
    return f'{job.job_id} ({job.platform.value}): failed: {job.error}'


def failure_output(job: JobResult) -> str:
    if job.failing_step is None:
        return ''
    step = job.steps[job.failing_step]
    return '\n'.join(x for x in (_tail(step.stdout), _tail(step.stderr)) if x)


def format_run(run: PipelineRun, color: bool) -> str:
    lines = []
    for job in run.jobs.values():
        mark = _paint('✓', GREEN, color) if job.ok else _paint('✗', RED, color)
        lines.append(f'{mark} {describe_job(job)}')
        if output := failure_output(job):
            lines.extend('    ' + line for line in output.splitlines())
    status = run.status.value.upper()
    lines.append(
        _paint(f'Run {run.run_id}: {status}', BOLD + (GREEN if run.ok else RED), color)
    )
    return '\n'.join(lines)


def check_run_output(run: PipelineRun) -> dict[str, str]:
    """Output block for a GitHub check run."""
    failed = [job for job in run.jobs.values() if not job.ok]
    summary = '\n'.join(f'- {describe_job(job)}' for job in run.jobs.values())
    text = '\n\n'.join(
        f'### {job.job_id}\n```\n{failure_output(job) or job.error or ""}\n```'
        for job in failed
    )
    title = 'All jobs passed' if run.ok else f'{len(failed)} of {len(run.jobs)} jobs failed'
    return {'title': title, 'summary': summary, 'text': text}
