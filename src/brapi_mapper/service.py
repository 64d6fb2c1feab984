"""BrAPI call dispatch.

``BrapiService`` is the request boundary of the engine.  It receives a
transport-neutral ``BrapiRequest``, checks the call settings and access
rules, runs the matching pipeline (search, object call, server metadata,
login) and returns a ``BrapiResponse`` carrying a BrAPI envelope.

Every failure becomes an envelope: ``BrapiError`` subclasses keep their
status code and message, anything else is logged and reported as a
redacted 500.

Usage:
    from brapi_mapper.service import BrapiRequest, BrapiService

    service = BrapiService(settings, definitions, registry, store, cache)
    response = await service.handle(
        BrapiRequest(method="get", version="v2", call="/germplasm",
                     query_params={"germplasmName": "IR64"})
    )
    await service.run_deferred()  # end-of-request hook
"""

import json
import logging
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pydantic import BaseModel, Field

from brapi_mapper.adapters.base import RecordStore
from brapi_mapper.cache.base import JobCache
from brapi_mapper.config.models import BrapiSettings, CallSetting, Method
from brapi_mapper.crud.orchestrator import CrudOrchestrator
from brapi_mapper.envelope import (
    DEFAULT_STATUS_MESSAGE,
    build_envelope,
    clean_page,
    clean_page_size,
    error_envelope,
    generate_metadata,
    status_entry,
)
from brapi_mapper.errors import (
    BadInputError,
    BrapiError,
    ForbiddenError,
    NotFoundError,
    NotImplementedCallError,
    TooManyRequestsError,
    UnauthorizedError,
)
from brapi_mapper.mapping.models import DatatypeMapping
from brapi_mapper.mapping.registry import MappingRegistry
from brapi_mapper.projection.projector import ObjectProjector
from brapi_mapper.query.fetcher import BrapiDataFetcher
from brapi_mapper.query.translator import CONTROL_PARAMETERS, QueryTranslator, is_search_call
from brapi_mapper.schema.models import BrapiDefinition, DefinitionTable
from brapi_mapper.search.coordinator import SearchJobCoordinator, SearchOutcome, SearchStatus
from brapi_mapper.search.queue import DeferredTaskQueue

logger = logging.getLogger(__name__)

ANONYMOUS_ROLE = "anonymous"
SEARCH_PREFIX = "/search/"
SEARCH_ID_PARAMETER = "searchResultsDbId"
CONTENT_TYPES = ["application/json"]

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
_BRAPI_PATH = re.compile(r"^/?(?:brapi/)?(v\d+)(/.*)$")


# ============================================================================
# Request / Response Models
# ============================================================================


class BrapiRequest(BaseModel):
    """A BrAPI call as received from the host.

    ``call`` is the call pattern as configured (``/germplasm/{germplasmDbId}``);
    ``path_params`` holds the placeholder values.  ``roles`` and ``allowed``
    come from the host's authorization layer.
    """

    method: str
    version: str
    call: str
    path_params: dict[str, Any] = Field(default_factory=dict)
    query_params: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    roles: list[str] = Field(default_factory=lambda: [ANONYMOUS_ROLE])
    allowed: bool = True
    secure: bool = True
    client_ip: str = ""
    token: str | None = None


class BrapiResponse(BaseModel):
    """Status code and JSON body of a handled call."""

    status_code: int = 200
    body: dict[str, Any] = Field(default_factory=dict)


class LoginSession(BaseModel):
    """Token issued by the credential service on login."""

    access_token: str
    expires_in: int = 3600
    user_display_name: str = ""
    client_id: str = ""


class CredentialService(Protocol):
    """Host-provided authentication backend for v1 /login and /logout."""

    async def authenticate(self, username: str, password: str) -> LoginSession | None:
        """Return a session for valid credentials, None otherwise."""
        ...

    async def logout(self, token: str | None) -> None:
        """Revoke the session behind *token*."""
        ...


class LoginThrottle(Protocol):
    """Host-provided flood control for failed logins."""

    def is_allowed(self, key: str) -> bool:
        ...

    def register(self, key: str) -> None:
        ...

    def clear(self, key: str) -> None:
        ...


CallHandler = Callable[[BrapiRequest], Awaitable[dict[str, Any]]]
ResultAlter = Callable[[dict[str, Any], BrapiRequest], None]


# ============================================================================
# Helpers
# ============================================================================


def call_signature(method: str, version: str, call: str) -> str:
    """Return the identifier of a call used to register handlers.

    Example:
        >>> call_signature("GET", "v2", "/lists/{listDbId}")
        'get_v2_lists_listdbid'
    """
    text = f"{method} {version} {call}".lower()
    return re.sub(r"\W+", "_", text).strip("_")


def classify_access(call: str, method: str) -> str:
    """Return ``"read"`` or ``"write"`` for default permission rules.

    GET calls, POST on search calls, and login are reads.
    """
    method = method.lower()
    if method == "get":
        return "read"
    if method == "post" and (is_search_call(call) or call == "/login"):
        return "read"
    return "write"


def is_anonymous(roles: list[str]) -> bool:
    return not roles or set(roles) <= {ANONYMOUS_ROLE}


def _call_regex(pattern: str) -> re.Pattern[str]:
    """Compile a call pattern; ``{name}`` matches one path segment."""
    parts: list[str] = []
    last = 0
    for match in _PLACEHOLDER.finditer(pattern):
        parts.append(re.escape(pattern[last:match.start()]))
        parts.append(f"(?P<{match.group(1)}>[^/]+)")
        last = match.end()
    parts.append(re.escape(pattern[last:]))
    return re.compile("^" + "".join(parts) + "$")


def _parse_body(body: Any) -> Any:
    """Decode a JSON request body (already decoded values pass through)."""
    if body is None:
        return None
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    if isinstance(body, str):
        if not body.strip():
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise BadInputError(f"Invalid JSON body: {e.msg}.") from e
    return body


def _with_warnings(warnings: list[str]) -> list[dict[str, str]]:
    status = [status_entry(DEFAULT_STATUS_MESSAGE)]
    status.extend(status_entry(w, "WARNING") for w in warnings)
    return status


# ============================================================================
# Service
# ============================================================================


class BrapiService:
    """Dispatch BrAPI calls to the mapping engine.

    Args:
        settings: Server configuration.
        definitions: Loaded BrAPI definitions.
        registry: Datatype mappings.
        store: Backend record store.
        cache: Job cache for deferred searches.
        credentials: Authentication backend for v1 login (optional).
        throttle: Failed-login flood control (optional).
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        settings: BrapiSettings,
        definitions: DefinitionTable,
        registry: MappingRegistry,
        store: RecordStore,
        cache: JobCache,
        credentials: CredentialService | None = None,
        throttle: LoginThrottle | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.definitions = definitions
        self.registry = registry
        self.store = store
        self.cache = cache
        self._credentials = credentials
        self._throttle = throttle

        self.projector = ObjectProjector(store, registry, definitions)
        self.fetcher = BrapiDataFetcher(store, self.projector)
        self.translator = QueryTranslator(settings, registry, self.fetcher)
        self.crud = CrudOrchestrator(store, self.projector, self.fetcher)
        self.queue = DeferredTaskQueue()
        self.searches = SearchJobCoordinator(
            cache,
            self.queue,
            lifetime=settings.search_default_lifetime,
            max_concurrent=settings.max_concurrent_searches,
            clock=clock,
        )

        self._handlers: dict[str, CallHandler] = {}
        self._alters: dict[str, list[ResultAlter]] = {}

    # ------------------------------------------------------------------------
    # Extension points
    # ------------------------------------------------------------------------

    def register_call_handler(self, signature: str, handler: CallHandler) -> None:
        """Replace the built-in implementation of one call.

        Args:
            signature: Value of ``call_signature()`` for the call.
            handler: Coroutine function returning the response body.
        """
        self._handlers[signature] = handler

    def register_result_alter(self, signature: str, alter: ResultAlter) -> None:
        """Add a function that edits the response body of one call in place."""
        self._alters.setdefault(signature, []).append(alter)

    # ------------------------------------------------------------------------
    # Host hooks
    # ------------------------------------------------------------------------

    async def run_deferred(self) -> int:
        """Run work deferred until after the response (searches)."""
        return await self.queue.drain()

    async def clear_searches(self) -> int:
        return await self.searches.clear()

    async def close(self) -> None:
        await self.store.close()
        await self.cache.close()

    def route(self, path: str, method: str = "get") -> BrapiRequest:
        """Match a concrete path against the enabled call patterns.

        Args:
            path: ``/brapi/v2/germplasm/12`` or ``v2/germplasm/12``.
            method: HTTP method.

        Returns:
            ``BrapiRequest`` with version, call pattern and path parameters.

        Raises:
            NotFoundError: If no enabled call matches.
        """
        match = _BRAPI_PATH.match(path.split("?", 1)[0])
        if not match:
            raise NotFoundError(f"Not a BrAPI path: '{path}'.")
        version, concrete = match.group(1), match.group(2).rstrip("/") or "/"

        # Literal segments win over placeholders
        patterns = sorted(
            self.settings.calls.get(version, {}),
            key=lambda c: (len(_PLACEHOLDER.findall(c)), c),
        )
        for pattern in patterns:
            found = _call_regex(pattern).match(concrete)
            if found:
                return BrapiRequest(
                    method=method.lower(),
                    version=version,
                    call=pattern,
                    path_params=found.groupdict(),
                )
        raise NotFoundError(f"No enabled call matches '{concrete}' ({version}).")

    # ------------------------------------------------------------------------
    # Boundary
    # ------------------------------------------------------------------------

    async def handle(self, request: BrapiRequest) -> BrapiResponse:
        """Handle one call; never raises."""
        try:
            return await self._dispatch(request)
        except BrapiError as e:
            if e.status_code >= 500 and not isinstance(e, NotImplementedCallError):
                # Storage and other server-side messages may carry SQL text
                logger.error(
                    f"{request.method.upper()} {request.version} {request.call} "
                    f"failed ({e.status_code}): {e.message}",
                    exc_info=e,
                )
                return BrapiResponse(
                    status_code=e.status_code, body=error_envelope("Internal server error")
                )
            logger.info(
                f"{request.method.upper()} {request.version} {request.call} "
                f"failed ({e.status_code}): {e.message}"
            )
            return BrapiResponse(
                status_code=e.status_code,
                body=error_envelope(e.message or "Request failed."),
            )
        except Exception:
            logger.exception(
                f"Unexpected failure in {request.method.upper()} {request.version} {request.call}"
            )
            return BrapiResponse(status_code=500, body=error_envelope("Internal server error"))

    async def _dispatch(self, request: BrapiRequest) -> BrapiResponse:
        version, call = request.version, request.call
        release = self.settings.release_for(version)

        setting = self.settings.call_setting(version, call)
        if setting is None:
            raise NotFoundError(f"Call '{call}' is not available for {version}.")
        try:
            method = Method(request.method.lower())
        except ValueError as e:
            raise NotFoundError(f"Method '{request.method}' is not supported.") from e
        if method not in setting.methods:
            raise NotFoundError(
                f"Method '{method.value.upper()}' is not enabled for call '{call}' ({version})."
            )

        self.check_access(request, setting, method)
        logger.debug(f"{method.value.upper()} {version} {call} roles={request.roles}")

        signature = call_signature(method.value, version, call)
        handler = self._handlers.get(signature)
        if handler is not None:
            response = BrapiResponse(body=await handler(request))
        else:
            response = await self._builtin(request, method.value, release, setting)

        for alter in self._alters.get(signature, []):
            alter(response.body, request)
        return response

    def check_access(self, request: BrapiRequest, setting: CallSetting, method: Method) -> None:
        """Raise if the caller may not use *method* on the call.

        Configured roles for the method take precedence; otherwise writes
        need an authenticated caller.  The host's own decision
        (``request.allowed``) always applies.

        Raises:
            UnauthorizedError: Anonymous caller denied.
            ForbiddenError: Authenticated caller denied.
        """
        if request.version == "v1" and request.call in ("/login", "/logout"):
            return

        allowed = request.allowed
        required = setting.roles.get(method)
        if required:
            allowed = allowed and bool(required & set(request.roles))
        elif classify_access(request.call, method.value) == "write":
            allowed = allowed and not is_anonymous(request.roles)

        if not allowed:
            if is_anonymous(request.roles):
                raise UnauthorizedError("Authentication required.")
            raise ForbiddenError("Access denied.")

    async def _builtin(
        self, request: BrapiRequest, method: str, release: str, setting: CallSetting
    ) -> BrapiResponse:
        version, call = request.version, request.call

        if version == "v2" and call == "/serverinfo":
            return self._server_info(version, release)
        if version == "v1" and call == "/calls":
            return self._v1_calls(request, release)
        if version == "v1" and call == "/login":
            return await self._login(request)
        if version == "v1" and call == "/logout":
            return await self._logout(request)

        definition = self.definitions.get(version, release)
        if call.startswith(SEARCH_PREFIX):
            return await self._search_call(request, method, definition, setting)

        datatype = definition.call_datatype(call)
        if datatype is None:
            raise NotImplementedCallError("Not implemented")
        return await self._object_call(request, method, definition, datatype, setting)

    # ------------------------------------------------------------------------
    # Server metadata
    # ------------------------------------------------------------------------

    def _server_info(self, version: str, release: str) -> BrapiResponse:
        calls = [
            {
                "contentTypes": CONTENT_TYPES,
                "dataTypes": CONTENT_TYPES,
                "methods": sorted(m.value.upper() for m in setting.methods),
                "service": call[1:],
                "versions": [release],
            }
            for call, setting in sorted(self.settings.calls.get(version, {}).items())
        ]
        server = self.settings.server
        result = {
            "calls": calls,
            "contactEmail": server.contact_email,
            "documentationURL": server.documentation_url,
            "location": server.location,
            "organizationName": server.organization_name,
            "organizationURL": server.organization_url,
            "serverDescription": server.server_description,
            "serverName": server.server_name,
        }
        metadata = generate_metadata(max(len(calls), 1), 0, len(calls))
        return BrapiResponse(body=build_envelope(metadata, result))

    def _v1_calls(self, request: BrapiRequest, release: str) -> BrapiResponse:
        page_size = clean_page_size(
            request.query_params.get("pageSize"),
            self.settings.page_size,
            self.settings.page_size_max,
        )
        page = clean_page(request.query_params.get("page"))
        calls = [
            {
                "call": call[1:],
                "dataTypes": ["json"],
                "datatypes": ["json"],
                "methods": sorted(m.value.upper() for m in setting.methods),
                "versions": [release],
            }
            for call, setting in sorted(self.settings.calls.get("v1", {}).items())
        ]
        items = calls[page * page_size:(page + 1) * page_size]
        metadata = generate_metadata(page_size, page, len(calls))
        return BrapiResponse(body=build_envelope(metadata, {"data": items}))

    # ------------------------------------------------------------------------
    # v1 login
    # ------------------------------------------------------------------------

    async def _login(self, request: BrapiRequest) -> BrapiResponse:
        if not request.secure and not self.settings.insecure:
            raise BrapiError("Login requires a secure (HTTPS) connection.", status_code=412)
        if self._credentials is None:
            raise NotImplementedCallError("Not implemented")

        data = _parse_body(request.body)
        if not isinstance(data, dict):
            raise BadInputError("Login expects a JSON object.")
        username = data.get("username")
        password = data.get("password")
        if not username or not password:
            raise BadInputError("Missing username or password.")

        ip_key = f"ip:{request.client_ip}"
        user_key = f"user:{username}:{request.client_ip}"
        if self._throttle is not None and not (
            self._throttle.is_allowed(ip_key) and self._throttle.is_allowed(user_key)
        ):
            raise TooManyRequestsError("Too many failed login attempts, try again later.")

        session = await self._credentials.authenticate(username, password)
        if session is None:
            if self._throttle is not None:
                self._throttle.register(ip_key)
                self._throttle.register(user_key)
            logger.info(f"Failed BrAPI login for '{username}' from {request.client_ip}")
            raise UnauthorizedError("Invalid username or password.")
        if self._throttle is not None:
            self._throttle.clear(user_key)

        body = build_envelope(generate_metadata(1, 0, 0))
        body.update(
            {
                "access_token": session.access_token,
                "expires_in": session.expires_in,
                "userDisplayName": session.user_display_name,
                "client_id": session.client_id,
            }
        )
        return BrapiResponse(body=body)

    async def _logout(self, request: BrapiRequest) -> BrapiResponse:
        if self._credentials is None:
            raise NotImplementedCallError("Not implemented")
        await self._credentials.logout(request.token)
        metadata = generate_metadata(
            1, 0, 0, status=[status_entry("User has been logged out successfully.")]
        )
        return BrapiResponse(body=build_envelope(metadata))

    # ------------------------------------------------------------------------
    # Search calls
    # ------------------------------------------------------------------------

    async def _search_call(
        self,
        request: BrapiRequest,
        method: str,
        definition: BrapiDefinition,
        setting: CallSetting,
    ) -> BrapiResponse:
        call = request.call
        job_id = request.path_params.get(SEARCH_ID_PARAMETER)
        base_call = call.replace(f"/{{{SEARCH_ID_PARAMETER}}}", "")
        datatype = definition.call_datatype(base_call)
        if datatype is None:
            raise NotImplementedCallError("Not implemented")
        mapping = self._mapping(request, definition, datatype)
        schema = self.projector.schema_for(mapping)
        call_def = definition.calls.get(base_call)
        deferred = setting.deferred or SEARCH_ID_PARAMETER in call

        if not deferred:
            if method != "post":
                raise NotFoundError(f"Search call '{call}' requires POST.")
            body = _parse_body(request.body)
            if body is not None and not isinstance(body, dict):
                raise BadInputError("Search parameters must be a JSON object.")
            query = await self.translator.translate(
                base_call, method, {}, request.query_params, body,
                mapping, schema, call_def, setting.filtering,
            )
            data = await self.fetcher.fetch(
                mapping, query.pushable_filters, query.post_filters, query.page, query.page_size
            )
            metadata = generate_metadata(
                query.page_size, query.page, data.total_count, _with_warnings(query.warnings)
            )
            return BrapiResponse(body=build_envelope(metadata, {"data": data.entities}))

        page_size = clean_page_size(
            request.query_params.get("pageSize"),
            self.settings.page_size,
            self.settings.page_size_max,
        )
        page = clean_page(request.query_params.get("page"))

        if method == "get":
            if not job_id:
                raise NotFoundError("Missing search identifier.")
            outcome = await self.searches.fetch(job_id, page, page_size)
        else:
            if job_id:
                raise NotFoundError("A search identifier cannot be submitted.")
            body = _parse_body(request.body)
            if body is not None and not isinstance(body, dict):
                raise BadInputError("Search parameters must be a JSON object.")
            filters = {
                k: v
                for k, v in {**request.query_params, **(body or {})}.items()
                if k not in CONTROL_PARAMETERS
            }

            async def executor() -> tuple[list[dict[str, Any]], int]:
                query = await self.translator.translate(
                    base_call, "post", {}, {}, filters,
                    mapping, schema, call_def, setting.filtering,
                )
                for warning in query.warnings:
                    logger.debug(f"Deferred {base_call}: {warning}")
                data = await self.fetcher.fetch(
                    mapping, query.pushable_filters, query.post_filters
                )
                return data.entities, data.total_count

            outcome = await self.searches.submit(
                base_call, filters, request.roles, executor, page, page_size
            )
        return self._search_response(outcome, page, page_size)

    @staticmethod
    def _search_response(outcome: SearchOutcome, page: int, page_size: int) -> BrapiResponse:
        if outcome.status == SearchStatus.NOT_FOUND:
            raise NotFoundError(f"Search '{outcome.job_id}' not found or expired.")
        if outcome.status in (SearchStatus.ACCEPTED, SearchStatus.RUNNING):
            return BrapiResponse(
                status_code=202,
                body=build_envelope(
                    generate_metadata(1, 0, 1), {SEARCH_ID_PARAMETER: outcome.job_id}
                ),
            )
        metadata = generate_metadata(page_size, page, outcome.total_count)
        return BrapiResponse(body=build_envelope(metadata, {"data": outcome.items}))

    # ------------------------------------------------------------------------
    # Object calls
    # ------------------------------------------------------------------------

    def _mapping(
        self, request: BrapiRequest, definition: BrapiDefinition, datatype: str
    ) -> DatatypeMapping:
        return self.registry.get_for_datatype(request.version, definition.release, datatype)

    async def _object_call(
        self,
        request: BrapiRequest,
        method: str,
        definition: BrapiDefinition,
        datatype: str,
        setting: CallSetting,
    ) -> BrapiResponse:
        mapping = self._mapping(request, definition, datatype)

        if method == "get" or (method == "post" and is_search_call(request.call)):
            return await self._retrieve(request, method, definition, mapping, setting)
        if method == "post":
            return await self._create(request, mapping)
        if method == "put":
            return await self._update(request, mapping)
        return await self._delete(request, mapping)

    async def _retrieve(
        self,
        request: BrapiRequest,
        method: str,
        definition: BrapiDefinition,
        mapping: DatatypeMapping,
        setting: CallSetting,
    ) -> BrapiResponse:
        body = _parse_body(request.body) if method == "post" else None
        if body is not None and not isinstance(body, dict):
            raise BadInputError("Search parameters must be a JSON object.")
        query = await self.translator.translate(
            request.call,
            method,
            request.path_params,
            request.query_params,
            body,
            mapping,
            self.projector.schema_for(mapping),
            definition.calls.get(request.call),
            setting.filtering,
        )
        data = await self.fetcher.fetch(
            mapping, query.pushable_filters, query.post_filters, query.page, query.page_size
        )
        status = _with_warnings(query.warnings)

        if query.single_record:
            if not data.entities:
                raise NotFoundError(f"{mapping.datatype} not found.")
            return BrapiResponse(
                body=build_envelope(generate_metadata(1, 0, 1, status), data.entities[0])
            )
        metadata = generate_metadata(query.page_size, query.page, data.total_count, status)
        return BrapiResponse(body=build_envelope(metadata, {"data": data.entities}))

    async def _create(self, request: BrapiRequest, mapping: DatatypeMapping) -> BrapiResponse:
        body = _parse_body(request.body)
        if isinstance(body, dict):
            body = [body]
        if not isinstance(body, list) or not body:
            raise BadInputError("Expected a list of objects to create.")

        created: list[dict[str, Any]] = []
        warnings: list[str] = []
        for item in body:
            result = await self.crud.create(mapping, item)
            created.append(result.object or {})
            warnings.extend(result.warnings)

        metadata = generate_metadata(len(created), 0, len(created), _with_warnings(warnings))
        return BrapiResponse(body=build_envelope(metadata, {"data": created}))

    async def _update(self, request: BrapiRequest, mapping: DatatypeMapping) -> BrapiResponse:
        body = _parse_body(request.body)
        if not isinstance(body, dict):
            raise BadInputError("Expected an object to update.")
        identifier_value = request.path_params.get(mapping.brapi_identifier)
        if identifier_value is None and len(request.path_params) == 1:
            identifier_value = next(iter(request.path_params.values()))

        result = await self.crud.update(mapping, body, identifier_value)
        metadata = generate_metadata(1, 0, 1, _with_warnings(result.warnings))
        return BrapiResponse(body=build_envelope(metadata, result.object))

    async def _delete(self, request: BrapiRequest, mapping: DatatypeMapping) -> BrapiResponse:
        filters: dict[str, Any] = dict(request.query_params)
        for name, value in request.path_params.items():
            # Path placeholders are named after the identifier field
            filters[mapping.brapi_identifier if len(request.path_params) == 1 else name] = value

        result = await self.crud.delete(mapping, filters)
        if not result.deleted:
            raise NotFoundError(f"No {mapping.datatype} matched, nothing deleted.")
        metadata = generate_metadata(len(result.deleted), 0, len(result.deleted))
        return BrapiResponse(body=build_envelope(metadata, {"data": result.deleted}))
