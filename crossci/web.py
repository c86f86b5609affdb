import hashlib
import hmac
import json
import logging
from datetime import datetime
from subprocess import CalledProcessError
from typing import Any

import httpx
from joserfc import jwt
from joserfc.jwk import RSAKey
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from crossci.config import config
from crossci.exceptions import ConfigurationError
from crossci.report import check_run_output
from crossci.runner import Orchestrator, parse_workflow
from crossci.runner.utils import read_file_at, update_mirror
from crossci.schemas import Source, TriggerEvent

logger = logging.getLogger(__name__)

GH_API_BASE = 'https://api.github.com'
CHECK_RUN_NAME = 'crossci'
PR_ACTIONS = ('opened', 'synchronize', 'reopened')


def get_token() -> str:
    now = int(datetime.now().timestamp()) - 60
    data = {
        'iat': now,
        'exp': now + 60 * 10,
        'iss': str(config.gh_app_id),
    }
    return jwt.encode({'alg': 'RS256'}, data, RSAKey.import_key(config.gh_key))


async def get_installation_client(installation_id: int) -> httpx.AsyncClient:
    async with httpx.AsyncClient(
        base_url=GH_API_BASE,
        headers={'Authorization': f'Bearer {get_token()}'},
    ) as app_client:
        resp = await app_client.post(
            f'/app/installations/{installation_id}/access_tokens'
        )
        resp.raise_for_status()
        installation_token = resp.json()['token']
    return httpx.AsyncClient(
        base_url=GH_API_BASE,
        headers={'Authorization': f'Bearer {installation_token}'},
    )


def verify_signature(body: bytes, signature: str | None) -> bool:
    if not config.webhook_secret:
        return True
    if not signature:
        return False
    expected = hmac.new(
        config.webhook_secret.encode(), body, hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(f'sha256={expected}', signature)


def parse_event(event_name: str | None, payload: dict[str, Any]) -> TriggerEvent | None:
    if event_name == 'push':
        ref = payload.get('ref', '')
        if not ref.startswith('refs/heads/') or payload.get('deleted'):
            return None
        branch = ref.removeprefix('refs/heads/')
        commit_sha = payload['after']
    elif event_name == 'pull_request':
        if payload.get('action') not in PR_ACTIONS:
            return None
        pull_request = payload['pull_request']
        branch = pull_request['base']['ref']
        commit_sha = pull_request['head']['sha']
    else:
        return None
    return TriggerEvent(
        event=event_name,
        branch=branch,
        commit_sha=commit_sha,
        repo_name=payload['repository']['full_name'],
        clone_url=payload['repository']['clone_url'],
        installation_id=(payload.get('installation') or {}).get('id'),
    )


class CheckRun:
    client: httpx.AsyncClient
    event: TriggerEvent
    check_run_id: int | None

    def __init__(self, client: httpx.AsyncClient, event: TriggerEvent):
        self.client = client
        self.event = event
        self.check_run_id = None

    async def start(self):
        resp = await self.client.post(
            f'/repos/{self.event.repo_name}/check-runs',
            json={
                'name': CHECK_RUN_NAME,
                'head_sha': self.event.commit_sha,
                'status': 'in_progress',
            },
        )
        resp.raise_for_status()
        self.check_run_id = resp.json()['id']

    async def complete(self, conclusion: str, output: dict[str, str]):
        resp = await self.client.patch(
            f'/repos/{self.event.repo_name}/check-runs/{self.check_run_id}',
            json={'status': 'completed', 'conclusion': conclusion, 'output': output},
        )
        resp.raise_for_status()


async def process_event(event: TriggerEvent):
    repo_path = await update_mirror(event)
    try:
        workflow = parse_workflow(
            await read_file_at(repo_path, event.commit_sha, config.workflow_file)
        )
    except CalledProcessError:
        logger.info(f'{event.repo_name}@{event.commit_sha}: no {config.workflow_file}')
        return
    except ConfigurationError as e:
        logger.error(f'{event.repo_name}@{event.commit_sha}: invalid workflow: {e}')
        return

    if not workflow.on.matches(event.event, event.branch):
        logger.info(
            f'{event.repo_name}: {event.event} to {event.branch} does not trigger a run'
        )
        return

    check_run = None
    if config.gh_app_id and config.gh_key and event.installation_id:
        check_run = CheckRun(
            await get_installation_client(event.installation_id), event
        )
    try:
        if check_run:
            await check_run.start()
        orchestrator = Orchestrator(
            source=Source(url=str(repo_path), commit_sha=event.commit_sha)
        )
        try:
            run = await orchestrator.submit(workflow)
        except ConfigurationError as e:
            logger.error(f'{event.repo_name}: {e}')
            if check_run:
                await check_run.complete(
                    'failure', {'title': 'Invalid workflow', 'summary': str(e)}
                )
            return
        except Exception:
            if check_run:
                await check_run.complete(
                    'failure',
                    {'title': 'Internal crossci error', 'summary': 'See server logs'},
                )
            raise
        if check_run:
            await check_run.complete(
                'success' if run.ok else 'failure', check_run_output(run)
            )
    finally:
        if check_run:
            await check_run.client.aclose()


async def webhook(request: Request):
    body = await request.body()
    if not verify_signature(body, request.headers.get('x-hub-signature-256')):
        return Response('Invalid signature', 401)
    try:
        event = parse_event(request.headers.get('x-github-event'), json.loads(body))
    except (ValueError, KeyError, TypeError):
        return Response('Invalid payload', 400)
    if event is None:
        return Response(None, 204)
    return Response(None, 202, background=BackgroundTask(process_event, event))


app = Starlette(
    debug=config.debug, routes=[Route('/webhook', webhook, methods=['POST'])]
)
