from crossci.runner.runner import (
    Orchestrator,
    load_workflow,
    parse_workflow,
    run_job,
    select_jobs,
    submit,
    validate_jobs,
)

__all__ = [
    'Orchestrator',
    'load_workflow',
    'parse_workflow',
    'run_job',
    'select_jobs',
    'submit',
    'validate_jobs',
]
