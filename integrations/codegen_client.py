"""
Codegen API Client for Autopilot

Async interface to the Codegen agent service REST API for:
- Repositories and Pull Requests
- Checks
- Agent actions and agent configuration
- Dashboard statistics and system health
- Task queue management
"""

import os
import logging
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

logger = logging.getLogger(__name__)


@dataclass
class CodegenConfig:
    """Codegen connection configuration."""
    api_key: str
    base_url: str = "https://api.codegen.com/v1"
    repository_id: str = ""
    organization_id: str = ""
    timeout: float = 30.0


@dataclass(eq=False)
class CodegenAPIError(Exception):
    """Error returned by, or raised while talking to, the Codegen API."""
    code: str
    message: str
    status_code: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'status_code': self.status_code,
            'details': self.details,
            'request_id': self.request_id,
            'timestamp': self.timestamp,
        }


class CodegenClient:
    """
    Async Codegen API client.

    The orchestrator only needs get_repositories, get_queue,
    get_dashboard_stats and get_system_health; the rest backs the
    live action handlers and the dashboard.
    """

    def __init__(self, config: CodegenConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url.rstrip('/'),
            headers=self._headers(config.api_key),
            timeout=config.timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Dict[str, Any],
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> 'CodegenClient':
        """Create client from the ``codegen`` section of settings.yaml."""
        section = settings.get('codegen') or {}
        api_key = os.environ.get('CODEGEN_API_KEY') or section.get('api_key')
        if not api_key:
            raise ValueError("No Codegen API key found (set CODEGEN_API_KEY or codegen.api_key)")

        return cls(CodegenConfig(
            api_key=api_key,
            base_url=os.environ.get('CODEGEN_BASE_URL') or section.get('base_url', CodegenConfig.base_url),
            repository_id=section.get('repository_id', ''),
            organization_id=section.get('organization_id', ''),
            timeout=float(section.get('timeout', 30.0)),
        ), transport=transport)

    @staticmethod
    def _headers(api_key: str) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': 'Codegen-Autopilot/1.0',
        }

    async def __aenter__(self) -> 'CodegenClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def update_config(self, api_key: Optional[str] = None, base_url: Optional[str] = None) -> None:
        """Swap credentials or endpoint without rebuilding the client."""
        if api_key:
            self.config.api_key = api_key
            self._client.headers.update(self._headers(api_key))
        if base_url:
            self.config.base_url = base_url
            self._client.base_url = base_url.rstrip('/')

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None
    ) -> Any:
        """Make an API request and return the decoded body."""
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        logger.debug(f"[Codegen API] {method} {endpoint}")

        try:
            response = await self._client.request(method, endpoint, json=data, params=params)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Codegen API timeout: {method} {endpoint}")
            raise CodegenAPIError(code='TIMEOUT', message=f"Request timeout: {method} {endpoint}") from e
        except httpx.HTTPStatusError as e:
            error = self._error_from_response(e.response)
            logger.error(f"Codegen API error: {error.status_code} {error.code} - {error.message}")
            raise error from e
        except httpx.RequestError as e:
            logger.error(f"Codegen API connection error: {e}")
            raise CodegenAPIError(code='NETWORK_ERROR', message=f"network error: {e}") from e

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_from_response(response: httpx.Response) -> CodegenAPIError:
        details = None
        try:
            body = response.json()
            if isinstance(body, dict):
                details = body
        except ValueError:
            pass

        error_info = (details or {}).get('error')
        if isinstance(error_info, dict):
            code = error_info.get('code') or f'HTTP_{response.status_code}'
            message = error_info.get('message') or response.reason_phrase
        else:
            code = f'HTTP_{response.status_code}'
            message = response.reason_phrase or 'An unknown error occurred'

        return CodegenAPIError(
            code=code,
            message=message,
            status_code=response.status_code,
            details=details,
            request_id=response.headers.get('x-request-id'),
        )

    @staticmethod
    def _unwrap(body: Any) -> Any:
        """Return the ``data`` member of an API envelope, or the body itself."""
        if isinstance(body, dict) and 'data' in body:
            return body['data']
        return body

    async def _get(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        return self._unwrap(await self._request('GET', endpoint, params=params))

    # ==================== Repositories ====================

    async def get_repositories(self, page: int = 1, per_page: int = 50) -> List[Dict[str, Any]]:
        """List repositories."""
        return await self._get('/repositories', params={'page': page, 'per_page': per_page})

    async def get_repository(self, repository_id: str) -> Dict[str, Any]:
        """Get a single repository."""
        return await self._get(f'/repositories/{repository_id}')

    async def create_repository(self, repository: Dict[str, Any]) -> Dict[str, Any]:
        """Register a repository."""
        return self._unwrap(await self._request('POST', '/repositories', data=repository))

    async def update_repository(self, repository_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update a repository."""
        return self._unwrap(await self._request('PATCH', f'/repositories/{repository_id}', data=updates))

    async def delete_repository(self, repository_id: str) -> None:
        """Delete a repository."""
        await self._request('DELETE', f'/repositories/{repository_id}')

    # ==================== Pull Requests ====================

    async def get_pull_requests(self, repository_id: str, state: str = 'open') -> List[Dict[str, Any]]:
        """List pull requests."""
        return await self._get(f'/repositories/{repository_id}/pulls', params={'state': state})

    async def get_pull_request(self, repository_id: str, pull_number: int) -> Dict[str, Any]:
        """Get a single pull request."""
        return await self._get(f'/repositories/{repository_id}/pulls/{pull_number}')

    async def merge_pull_request(
        self,
        repository_id: str,
        pull_number: int,
        merge_method: str = 'merge'
    ) -> Dict[str, Any]:
        """Merge a pull request."""
        return self._unwrap(await self._request(
            'PUT',
            f'/repositories/{repository_id}/pulls/{pull_number}/merge',
            data={'merge_method': merge_method}
        ))

    # ==================== Checks ====================

    async def get_checks(self, repository_id: str, ref: Optional[str] = None) -> List[Dict[str, Any]]:
        """List check runs."""
        return await self._get(f'/repositories/{repository_id}/checks', params={'ref': ref})

    async def trigger_checks(self, repository_id: str, ref: str) -> List[Dict[str, Any]]:
        """Trigger checks for a ref."""
        return self._unwrap(await self._request(
            'POST', f'/repositories/{repository_id}/checks/trigger', data={'ref': ref}
        ))

    # ==================== Agent Actions ====================

    async def get_actions(
        self,
        repository_id: Optional[str] = None,
        status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List agent actions."""
        return await self._get('/actions', params={'repository_id': repository_id, 'status': status})

    async def get_action(self, action_id: str) -> Dict[str, Any]:
        """Get a single agent action."""
        return await self._get(f'/actions/{action_id}')

    async def create_action(self, action: Dict[str, Any]) -> Dict[str, Any]:
        """Create an agent action."""
        return self._unwrap(await self._request('POST', '/actions', data=action))

    async def cancel_action(self, action_id: str) -> Dict[str, Any]:
        """Cancel an agent action."""
        return self._unwrap(await self._request('POST', f'/actions/{action_id}/cancel'))

    async def retry_action(self, action_id: str) -> Dict[str, Any]:
        """Retry an agent action."""
        return self._unwrap(await self._request('POST', f'/actions/{action_id}/retry'))

    # ==================== Agent Configuration ====================

    async def get_agent_config(self, repository_id: str) -> Dict[str, Any]:
        return await self._get(f'/repositories/{repository_id}/agent/config')

    async def update_agent_config(self, repository_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        return self._unwrap(await self._request(
            'PATCH', f'/repositories/{repository_id}/agent/config', data=config
        ))

    async def enable_agent(self, repository_id: str) -> None:
        await self._request('POST', f'/repositories/{repository_id}/agent/enable')

    async def disable_agent(self, repository_id: str) -> None:
        await self._request('POST', f'/repositories/{repository_id}/agent/disable')

    # ==================== Dashboard & Health ====================

    async def get_dashboard_stats(
        self,
        repository_id: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None
    ) -> Dict[str, Any]:
        """Get aggregate dashboard statistics (failedActions, totalActions, ...)."""
        return await self._get('/dashboard/stats', params={
            'repository_id': repository_id,
            'from': date_from,
            'to': date_to,
        })

    async def get_system_health(self) -> Dict[str, Any]:
        """Get service health ({status, checks})."""
        return await self._get('/health')

    # ==================== Queue ====================

    async def get_queue(self) -> List[Dict[str, Any]]:
        """List queued tasks."""
        return await self._get('/queue')

    async def get_queued_task(self, task_id: str) -> Dict[str, Any]:
        return await self._get(f'/queue/{task_id}')

    async def add_to_queue(self, task: Dict[str, Any]) -> Dict[str, Any]:
        """Enqueue a task."""
        return self._unwrap(await self._request('POST', '/queue', data=task))

    async def cancel_queued_task(self, task_id: str) -> None:
        await self._request('DELETE', f'/queue/{task_id}')

    async def pause_queue(self) -> None:
        await self._request('POST', '/queue/pause')

    async def resume_queue(self) -> None:
        await self._request('POST', '/queue/resume')

    async def clear_queue(self) -> None:
        await self._request('POST', '/queue/clear')
