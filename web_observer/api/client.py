import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

import httpx
from pydantic import BaseModel

from ..core.config import API_URL, DEFAULT_REGION, SDK_LANGUAGE, SDK_VERSION, get_env_var
from ..core.errors import (
    ConfigurationError,
    HttpError,
    RemoteAPIError,
    ResponseBodyError,
    SessionStateError,
    UnauthorizedError,
    UnsupportedIntegrationError,
)
from ..core.log import Logger, default_logger, log_line
from .stream import consume_stream

EXECUTE_METHODS = ("act", "extract", "observe", "navigate", "agentExecute")


class SessionState(Enum):
    UNSTARTED = "unstarted"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass
class RemoteSession:
    session_id: Optional[str]
    api_key: str
    project_id: str
    model_api_key: str
    available: bool = True


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


class RemoteSessionClient:
    """Client for delegated execution: one remote session, one streamed call at a time."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        project_id: Optional[str] = None,
        logger: Logger = default_logger,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or get_env_var("WEB_OBSERVER_API_KEY")
        self.project_id = project_id or get_env_var("WEB_OBSERVER_PROJECT_ID")
        self.logger = logger
        self.state = SessionState.UNSTARTED
        self.session: Optional[RemoteSession] = None
        self._in_flight = False
        # one client for the whole session so cookies persist across requests
        self._http = httpx.AsyncClient(
            base_url=base_url or API_URL,
            transport=transport,
            timeout=httpx.Timeout(30.0, read=None),
        )

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id if self.session else None

    async def __aenter__(self) -> "RemoteSessionClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, model_api_key: Optional[str], with_body: bool) -> Dict[str, str]:
        headers = {
            "x-bb-api-key": self.api_key,
            "x-bb-project-id": self.project_id,
            # real-time logs need a streamed response
            "x-stream-response": "true",
            "x-sent-at": datetime.now(timezone.utc).isoformat(),
            "x-language": SDK_LANGUAGE,
            "x-sdk-version": SDK_VERSION,
        }
        if self.session_id:
            headers["x-bb-session-id"] = self.session_id
        if model_api_key:
            headers["x-model-api-key"] = model_api_key
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def start(
        self,
        model_name: str,
        model_api_key: str,
        dom_settle_timeout_ms: Optional[int] = None,
        verbose: Optional[int] = None,
        debug_dom: Optional[bool] = None,
        system_prompt: Optional[str] = None,
        self_heal: Optional[bool] = None,
        wait_for_captcha_solves: Optional[bool] = None,
        action_timeout_ms: Optional[int] = None,
        browserbase_session_create_params: Optional[Dict[str, Any]] = None,
        browserbase_session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not model_api_key:
            raise ConfigurationError("model_api_key is required")
        if self.state is not SessionState.UNSTARTED:
            raise SessionStateError(f"Session already {self.state.value}")

        region = (browserbase_session_create_params or {}).get("region")
        if region and region != DEFAULT_REGION:
            # not served remotely; the caller's own session id stays authoritative
            self.session = RemoteSession(browserbase_session_id, self.api_key, self.project_id,
                                         model_api_key, available=False)
            self.state = SessionState.ACTIVE
            return {"sessionId": browserbase_session_id, "available": False}

        body = _drop_none({
            "modelName": model_name,
            "domSettleTimeoutMs": dom_settle_timeout_ms,
            "verbose": verbose,
            "debugDom": debug_dom,
            "systemPrompt": system_prompt,
            "selfHeal": self_heal,
            "waitForCaptchaSolves": wait_for_captcha_solves,
            "actionTimeoutMs": action_timeout_ms,
            "browserbaseSessionCreateParams": browserbase_session_create_params,
            "browserbaseSessionID": browserbase_session_id,
        })
        response = await self._http.post(
            "/sessions/start", content=json.dumps(body), headers=self._headers(model_api_key, True))

        if response.status_code == 401:
            raise UnauthorizedError(
                "Unauthorized. Ensure you provided a valid API key and that it is whitelisted.")
        if response.status_code != 200:
            self.logger(log_line("api", f"API error ({response.status_code}): {response.text}", 0))
            raise HttpError(response.status_code, response.text)

        payload = response.json()
        if payload.get("success") is False:
            raise RemoteAPIError(payload.get("message") or "Session start failed")

        data = payload.get("data") or {}
        session_id = data.get("sessionId")
        available = bool(data.get("available", True))
        if not available and browserbase_session_id:
            session_id = browserbase_session_id
            data["sessionId"] = session_id

        self.session = RemoteSession(session_id, self.api_key, self.project_id, model_api_key, available)
        self.state = SessionState.ACTIVE
        return data

    async def act(self, options: Dict[str, Any]) -> Any:
        return await self._execute("act", dict(options))

    async def extract(self, options: Optional[Dict[str, Any]] = None,
                      schema: Union[Dict[str, Any], Type[BaseModel], None] = None) -> Any:
        args = dict(options or {})
        if schema is not None:
            args["schemaDefinition"] = schema if isinstance(schema, dict) else schema.model_json_schema()
        return await self._execute("extract", args)

    async def observe(self, options: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return await self._execute("observe", dict(options or {}))

    async def goto(self, url: str, options: Optional[Dict[str, Any]] = None) -> None:
        await self._execute("navigate", _drop_none({"url": url, "options": options}))

    async def agent_execute(self, agent_config: Dict[str, Any], execute_options: Dict[str, Any]) -> Any:
        if agent_config.get("integrations"):
            raise UnsupportedIntegrationError(
                "MCP integrations are not supported in API mode. "
                "Use local mode with experimental enabled to use MCP integrations.")
        return await self._execute(
            "agentExecute", {"agentConfig": agent_config, "executeOptions": execute_options})

    async def end(self) -> httpx.Response:
        self._require_active()
        response = await self._http.post(
            f"/sessions/{self.session_id}/end", headers=self._headers(self.session.model_api_key, False))
        self.state = SessionState.ENDED
        return response

    def _require_active(self) -> None:
        if self.state is not SessionState.ACTIVE or self.session is None:
            raise SessionStateError(f"Session is {self.state.value}; call start() first")

    async def _execute(self, method: str, args: Dict[str, Any],
                       params: Optional[Dict[str, str]] = None) -> Any:
        if method not in EXECUTE_METHODS:
            raise ValueError(f"Unknown session method: {method}")
        self._require_active()
        if self._in_flight:
            raise SessionStateError("Another call is already in flight for this session")

        self._in_flight = True
        try:
            async with self._http.stream(
                "POST",
                f"/sessions/{self.session_id}/{method}",
                params=params or None,
                content=json.dumps(args),
                headers=self._headers(self.session.model_api_key, True),
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise HttpError(response.status_code, body)
                if response.status_code == 204:
                    raise ResponseBodyError()
                return await consume_stream(response.aiter_bytes(), self.logger)
        finally:
            self._in_flight = False
