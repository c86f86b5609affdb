import shutil
from pathlib import Path

from crossci.config import config
from crossci.schemas import TriggerEvent
from crossci.utils import async_check_output, GIT


async def update_mirror(event: TriggerEvent) -> Path:
    repo_path = config.repos_dir / event.repo_name
    if (repo_path / 'HEAD').is_file():
        await async_check_output(
            GIT, 'remote', 'set-url', 'origin', event.clone_url, cwd=repo_path
        )
        await async_check_output(GIT, 'fetch', '--prune', cwd=repo_path)
    else:
        # Leftovers of a clone that failed halfway
        if repo_path.exists():
            shutil.rmtree(repo_path)
        repo_path.mkdir(parents=True)
        try:
            await async_check_output(
                GIT,
                'clone',
                '--mirror',
                event.clone_url,
                '.',
                cwd=repo_path,
            )
        except BaseException:
            shutil.rmtree(repo_path, ignore_errors=True)
            raise
    return repo_path


async def read_file_at(repo_path: Path, commit_sha: str, path: str) -> str:
    return await async_check_output(
        GIT, 'show', f'{commit_sha}:{path}', cwd=repo_path
    )
