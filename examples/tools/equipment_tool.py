"""Equipment Tools for the consultant chat service.

This module exposes the equipment registry API to the model: listing
equipment, looking one item up and reading its maintenance log.

Public Interface:
    - EQUIPMENT_TOOLS: Tool definitions advertised to the model
    - EquipmentApiClient: Thin aiohttp client for the equipment API
    - create_equipment_module(): Build the ToolModule for the registry

Examples:
    >>> module = create_equipment_module(EquipmentApiClient("https://equipment.example.com/api"))
    >>> registry = ToolRegistry.from_modules(module)
    >>> await registry.dispatch("get_all_equipment", {"type": "pump"})
    [{'id': 'eq-1', 'name': 'Feed pump P-101', ...}]

The API answers every action with ``{"success": bool, "data": ..., "error": str}``.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Final, List, Optional

import aiohttp
import backoff

from consultant.core.registry import ToolModule
from consultant.core.types import InputSchema, ToolDefinition

logger = logging.getLogger(__name__)

# Constants
API_URL_ENV: Final[str] = "EQUIPMENT_API_URL"
DEFAULT_TIMEOUT: Final[float] = 30.0
DEFAULT_RETRY_COUNT: Final[int] = 2
RETRY_BASE_DELAY: Final[float] = 1.0
DEFAULT_LOG_LIMIT: Final[int] = 10


class EquipmentApiError(Exception):
    """Raised when the equipment API cannot serve a request."""
    pass


class _RetryableStatus(Exception):
    """Server side failure worth another attempt."""
    pass


RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, _RetryableStatus)


def _log_retry(details: Dict[str, Any]) -> None:
    logger.warning("Equipment API call failed, retrying", extra={
        "action": details["args"][0],
        "attempt": details["tries"],
        "delay_s": details["wait"],
        "error": str(details.get("exception"))
    })


EQUIPMENT_TOOLS: Final[List[ToolDefinition]] = [
    ToolDefinition(
        name="get_all_equipment",
        description=(
            "Get the list of all equipment. Can filter by type or status, "
            "or search by name."
        ),
        input_schema=InputSchema(
            properties={
                "search": {
                    "type": "string",
                    "description": "Search query matched against the equipment name"
                },
                "type": {
                    "type": "string",
                    "description": "Equipment type (filter, pump, tank, valve, etc.)"
                },
                "status": {
                    "type": "string",
                    "enum": ["active", "inactive", "archived"],
                    "description": "Equipment status"
                }
            },
            required=[]
        )
    ),
    ToolDefinition(
        name="get_equipment_details",
        description=(
            "Get detailed information about one piece of equipment by its ID, "
            "including specifications, dates and documentation links."
        ),
        input_schema=InputSchema(
            properties={
                "equipment_id": {
                    "type": "string",
                    "description": "Equipment ID (UUID)"
                }
            },
            required=["equipment_id"]
        )
    ),
    ToolDefinition(
        name="get_maintenance_log",
        description="Get the maintenance log of a piece of equipment with the history of all work done.",
        input_schema=InputSchema(
            properties={
                "equipment_id": {
                    "type": "string",
                    "description": "Equipment ID"
                },
                "status": {
                    "type": "string",
                    "enum": ["completed", "planned", "in_progress", "cancelled"],
                    "description": "Filter entries by status"
                },
                "limit": {
                    "type": "number",
                    "description": f"Maximum number of entries (default {DEFAULT_LOG_LIMIT})"
                }
            },
            required=["equipment_id"]
        )
    ),
]


class EquipmentApiClient:
    """Client for the equipment registry API.

    GET requests carry the action name and its parameters as query
    arguments. Server errors (5xx) and network failures are retried with
    exponential backoff.

    Args:
        base_url: URL of the API endpoint
        timeout: Request timeout in seconds
        retry_count: Number of retries after the first attempt
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        retry_count: int = DEFAULT_RETRY_COUNT
    ) -> None:
        if not base_url:
            raise EquipmentApiError(
                "Equipment API URL not found. "
                f"Please set the {API_URL_ENV} environment variable."
            )
        self.base_url = base_url
        self.timeout = timeout
        self.retry_count = retry_count

    @classmethod
    def from_env(cls) -> "EquipmentApiClient":
        return cls(os.environ.get(API_URL_ENV, ""))

    async def get(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call an API action.

        Args:
            action: API action name, e.g. ``getAll``
            params: Query parameters; None values are dropped

        Returns:
            The ``data`` field of the API response

        Raises:
            EquipmentApiError: If the API reports an error or all retries fail
        """
        query = {"action": action}
        for key, value in (params or {}).items():
            if value is not None:
                query[key] = str(value)

        fetch = backoff.on_exception(
            backoff.expo,
            RETRYABLE_ERRORS,
            max_tries=self.retry_count + 1,
            factor=RETRY_BASE_DELAY,
            jitter=None,
            on_backoff=_log_retry,
            logger=None
        )(self._fetch)
        try:
            return await fetch(action, query)
        except RETRYABLE_ERRORS as e:
            raise EquipmentApiError(f"Equipment API {action}: {e}") from e

    async def _fetch(self, action: str, query: Dict[str, str]) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(
                self.base_url,
                params=query,
                headers={"Accept": "application/json"}
            ) as response:
                if response.status >= 500:
                    raise _RetryableStatus(f"HTTP {response.status}")
                if response.status != 200:
                    raise EquipmentApiError(
                        f"Equipment API {action}: HTTP {response.status} - {await response.text()}"
                    )
                body = await response.json()

        if not body.get("success"):
            raise EquipmentApiError(body.get("error") or f"Equipment API {action}: unknown error")
        return body.get("data")


def _limit(value: Any) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_LOG_LIMIT
    return limit if limit > 0 else DEFAULT_LOG_LIMIT


def create_equipment_module(client: Optional[EquipmentApiClient] = None) -> ToolModule:
    """Create the equipment ToolModule.

    Args:
        client: API client; built from ``EQUIPMENT_API_URL`` on first use
            when omitted, so the module can be registered before the
            environment is complete

    Returns:
        A module with one executor per equipment tool
    """
    state: Dict[str, EquipmentApiClient] = {}
    if client is not None:
        state["client"] = client

    def _client() -> EquipmentApiClient:
        if "client" not in state:
            state["client"] = EquipmentApiClient.from_env()
        return state["client"]

    async def execute_equipment_tool(name: str, tool_input: Dict[str, Any]) -> Any:
        if name == "get_all_equipment":
            return await _client().get("getAll", {
                "search": tool_input.get("search"),
                "type": tool_input.get("type"),
                "status": tool_input.get("status")
            })
        if name == "get_equipment_details":
            return await _client().get("getById", {"id": tool_input["equipment_id"]})
        if name == "get_maintenance_log":
            return await _client().get("getMaintenanceLog", {
                "equipmentId": tool_input["equipment_id"],
                "status": tool_input.get("status"),
                "limit": _limit(tool_input.get("limit", DEFAULT_LOG_LIMIT))
            })
        raise EquipmentApiError(f"Unknown equipment tool: {name}")

    return ToolModule(
        name="equipment",
        definitions=EQUIPMENT_TOOLS,
        executors={tool.name: execute_equipment_tool for tool in EQUIPMENT_TOOLS}
    )
