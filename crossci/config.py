import os
import yaml
from pathlib import Path
from pydantic import AfterValidator, field_validator
from pydantic_core.core_schema import ValidationInfo
from pydantic_settings import BaseSettings
from typing import Annotated

from crossci.const import DEFAULT_WORKFLOW_FILE

data_home = Path(os.getenv('XDG_DATA_HOME') or os.path.expanduser('~/.local/share'))


class Config(BaseSettings):
    host: str = '127.0.0.1'
    port: int = 8000
    debug: bool = False
    # Process-wide preference for colored command output
    color: bool = True

    data_dir: Annotated[Path, AfterValidator(lambda path: path.absolute())] = (
        data_home / 'crossci'
    )
    runs_dir: Path = None
    repos_dir: Path = None

    workflow_file: str = DEFAULT_WORKFLOW_FILE
    keep_workdirs: bool = False
    max_parallel_jobs: int | None = None

    linux_image: str | None = None
    always_use_sandbox: bool = False

    webhook_secret: str | None = None
    gh_app_id: int | None = None
    gh_key: str | None = None

    # noinspection PyNestedDecorators
    @field_validator('runs_dir', 'repos_dir', mode='before')
    @classmethod
    def default_dirs(cls, v: Path | None, info: ValidationInfo):
        if 'data_dir' not in info.data:
            # data_dir itself failed validation, only report that error
            return ''
        if v is None:
            dirname = info.field_name.removesuffix('_dir')
            res = info.data['data_dir'] / dirname
        else:
            res = Path(v)
        res.mkdir(parents=True, exist_ok=True)
        return res

    # noinspection PyNestedDecorators
    @field_validator('max_parallel_jobs')
    @classmethod
    def v_max_parallel_jobs(cls, v: int | None):
        if v is not None and v < 1:
            raise ValueError('max_parallel_jobs must be positive')
        return v


config_home = Path(os.getenv('XDG_CONFIG_HOME') or os.path.expanduser('~/.config'))
config_file = config_home / 'crossci' / 'config.yml'
if config_file.is_file():
    config_values = yaml.safe_load(config_file.read_text()) or {}
else:
    config_values = {}
config = Config(**config_values, _env_file='.env', _env_prefix='CROSSCI_')

__all__ = ['Config', 'config']
