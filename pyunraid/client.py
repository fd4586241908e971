# pyUnraid - GraphQL Client
# -*- coding: utf-8 -*-
"""
 Unraid GraphQL API client

 Class:
    UnraidClient(config, discovery, session, poolmaxsize) - client for one Unraid server

 Functions:
    execute(query, variables, model)  - run a query and return the validated payload
    resolve()                         - return the GraphQL URL, running SSL discovery if needed
    invalidate()                      - forget the discovered URL and SSL mode for this host
    test_connection()                 - True if the server answers query { online }
    test_connection_detailed()        - dict with success flag and error details
    system_info(), storage_info(), docker_containers(), vms()        - typed read queries
    start_container(id), stop_container(id), restart_container(id)  - container control
    start_vm(id), stop_vm(id)                                      - VM control
    start_array(), stop_array()                                    - array control
    start_parity_check(correct), pause_parity_check(), resume_parity_check(),
    cancel_parity_check()                                          - parity check control
    spin_up_disk(id), spin_down_disk(id)                           - disk spin control

 Every failure leaves execute() as exactly one UnraidApiError carrying an
 ErrorCode, a message and a retryable hint. Nothing is retried here; retry
 and backoff belong to the PollManager.

 config.timeout is passed to requests as is, so it limits the connect and each
 read separately rather than the whole exchange (DNS lookup is not covered).
"""
import json
import logging
from typing import Any, Dict, List, Optional, Type, Union
from urllib.parse import urljoin

import requests
from pydantic import (BaseModel, ConfigDict, PydanticSchemaGenerationError, TypeAdapter, ValidationError,
                      model_validator)

from pyunraid import queries, schemas
from pyunraid.discovery import SslDiscovery
from pyunraid.exceptions import ErrorCode, UnraidApiError
from pyunraid.models import ConnectionConfig, SslMode
from pyunraid.probe import REDIRECT_CODES

log = logging.getLogger(__name__)

MAX_REDIRECTS = 5
BODY_SNIPPET_LENGTH = 200
API_KEY_HEADER = 'x-api-key'

# HTTP status -> (code, retryable)
HTTP_ERROR_MAP = {
    401: (ErrorCode.AUTHENTICATION_ERROR, False),
    403: (ErrorCode.AUTHENTICATION_ERROR, False),
    404: (ErrorCode.RESOURCE_NOT_FOUND, False),
    429: (ErrorCode.RATE_LIMITED, True),
    500: (ErrorCode.SERVER_ERROR, True),
    502: (ErrorCode.SERVER_ERROR, True),
    503: (ErrorCode.SERVER_ERROR, True),
    504: (ErrorCode.TIMEOUT_ERROR, True),
}

# GraphQL extensions.code -> ErrorCode
GRAPHQL_CODE_MAP = {
    'UNAUTHENTICATED': ErrorCode.AUTHENTICATION_ERROR,
    'FORBIDDEN': ErrorCode.AUTHENTICATION_ERROR,
    'NOT_FOUND': ErrorCode.RESOURCE_NOT_FOUND,
    'INTERNAL_SERVER_ERROR': ErrorCode.SERVER_ERROR,
    'BAD_USER_INPUT': ErrorCode.VALIDATION_ERROR,
}

# Fallback when a GraphQL error has no code, checked in order
GRAPHQL_MESSAGE_PATTERNS = (
    (('not found',), ErrorCode.RESOURCE_NOT_FOUND),
    (('unauthorized', 'unauthenticated', 'authentication', 'forbidden', 'permission denied'),
     ErrorCode.AUTHENTICATION_ERROR),
    (('internal server error', 'internal error'), ErrorCode.SERVER_ERROR),
    (('bad user input', 'invalid input', 'invalid argument', 'validation'), ErrorCode.VALIDATION_ERROR),
    (('timeout', 'timed out'), ErrorCode.TIMEOUT_ERROR),
)

TIMEOUT_PATTERNS = ('timed out', 'timeout')
REFUSED_PATTERNS = ('connection refused', 'econnrefused', '[errno 111]', '[winerror 10061]')
DNS_PATTERNS = ('could not resolve', 'failed to resolve', 'name or service not known', 'nodename nor servname',
                'getaddrinfo failed', 'temporary failure in name resolution', 'enotfound', 'eai_again')


class GraphQLError(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
    locations: Optional[List[Dict[str, Any]]] = None
    path: Optional[List[Union[str, int]]] = None
    extensions: Optional[Dict[str, Any]] = None


class GraphQLEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    data: Any = None
    errors: Optional[List[GraphQLError]] = None

    @model_validator(mode='before')
    @classmethod
    def _require_data_or_errors(cls, value):
        if isinstance(value, dict) and 'data' not in value and 'errors' not in value:
            raise ValueError("response has neither 'data' nor 'errors'")
        return value


def http_error(status: int, reason: str = "") -> UnraidApiError:
    code, retryable = HTTP_ERROR_MAP.get(status, (ErrorCode.UNKNOWN_ERROR, False))
    return UnraidApiError(code, f"HTTP {status}: {reason}".rstrip(': '), details={'status': status},
                          retryable=retryable)


def graphql_error_code(error: GraphQLError) -> ErrorCode:
    code = (error.extensions or {}).get('code')
    if isinstance(code, str) and code.upper() in GRAPHQL_CODE_MAP:
        return GRAPHQL_CODE_MAP[code.upper()]
    message = error.message.lower()
    for patterns, mapped in GRAPHQL_MESSAGE_PATTERNS:
        if any(p in message for p in patterns):
            return mapped
    return ErrorCode.OPERATION_FAILED


def classify_exception(exc: Exception, host: str) -> UnraidApiError:
    """Turn a transport level exception into an UnraidApiError."""
    message = str(exc) or exc.__class__.__name__
    text = message.lower()
    if isinstance(exc, requests.exceptions.Timeout) or any(p in text for p in TIMEOUT_PATTERNS):
        return UnraidApiError(ErrorCode.TIMEOUT_ERROR, message, retryable=True)
    if any(p in text for p in REFUSED_PATTERNS):
        return UnraidApiError(ErrorCode.CONNECTION_ERROR, f"Connection refused - is the server running at {host}?",
                              details={'cause': message}, retryable=True)
    if any(p in text for p in DNS_PATTERNS):
        return UnraidApiError(ErrorCode.CONNECTION_ERROR, f"Could not resolve hostname: {host}",
                              details={'cause': message}, retryable=True)
    return UnraidApiError(ErrorCode.CONNECTION_ERROR, message, retryable=True)


def validate_payload(data: Any, model: Any) -> Any:
    """Validate data against a pydantic model class or any type TypeAdapter accepts."""
    if model is None:
        return data
    if isinstance(model, type) and issubclass(model, BaseModel):
        validate = model.model_validate
    else:
        try:
            validate = TypeAdapter(model).validate_python
        except PydanticSchemaGenerationError as exc:
            raise UnraidApiError(ErrorCode.VALIDATION_ERROR, f"Cannot validate response against {model!r}",
                                 details={'cause': str(exc)}, retryable=False) from exc
    try:
        return validate(data)
    except ValidationError as exc:
        raise UnraidApiError(ErrorCode.VALIDATION_ERROR, f"Response data does not match expected shape: "
                             f"{exc.error_count()} validation error(s)",
                             details={'validation_errors': exc.errors(include_url=False)},
                             retryable=False) from exc


class UnraidClient:
    def __init__(self, config: ConnectionConfig, discovery: Optional[SslDiscovery] = None,
                 session: Optional[requests.Session] = None, poolmaxsize: int = 10):
        """
        Client for the GraphQL API of one Unraid server.

        Args:
            config      = ConnectionConfig with host, api_key and optional custom ports
            discovery   = SslDiscovery to resolve the endpoint (shared cache across clients if passed in)
            session     = requests.Session to use (a pooled session is created if not given)
            poolmaxsize = Pool max size for http connection re-use
        """
        self.config = config
        self.discovery = discovery if discovery is not None else SslDiscovery(timeout=config.timeout)
        if session is None:
            session = requests.Session()
            adapter = requests.adapters.HTTPAdapter(pool_maxsize=poolmaxsize)
            session.mount('http://', adapter)
            session.mount('https://', adapter)
        self.session = session

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.session.close()

    def resolve(self) -> str:
        """Return the GraphQL URL for this server, running SSL discovery when the config has none."""
        config = self.config
        if not config.resolved_url:
            log.debug(f"No resolved URL for {config.host} - running SSL discovery")
            result = self.discovery.discover(config.host.strip(), config.http_port, config.https_port,
                                             timeout=config.timeout)
            config.apply_discovery(result)
        return config.resolved_url

    def invalidate(self):
        """Forget the discovered endpoint so the next request runs discovery again."""
        self.config.clear_resolution()
        self.discovery.invalidate(self.config.host.strip() or None)

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None,
                model: Optional[Union[Type[BaseModel], Any]] = None) -> Any:
        """
        Run a GraphQL query or mutation and return the validated data payload.

        Args:
            query     = GraphQL document
            variables = Query variables
            model     = Expected shape of the data payload (pydantic model class, typing
                        construct such as Dict[str, Any], or None to skip validation)

        Raises:
            UnraidApiError on any failure
        """
        host = (self.config.host or "").strip()
        if not host:
            raise UnraidApiError(ErrorCode.VALIDATION_ERROR, "Host is required but was empty", retryable=False)
        try:
            url = self.resolve()
            response = self._post(url, {'query': query, 'variables': variables or {}})
            return self._decode(response, model)
        except UnraidApiError:
            raise
        except Exception as exc:
            log.debug(f"Request to {host} failed: {exc}")
            raise classify_exception(exc, host) from exc

    def _send(self, url: str, payload: dict) -> requests.Response:
        verify = self.config.ssl_mode == SslMode.STRICT
        log.debug(f"POST {url} (verify={verify})")
        return self.session.post(url, json=payload, headers={API_KEY_HEADER: self.config.api_key},
                                 verify=verify, timeout=self.config.timeout, allow_redirects=False)

    def _post(self, url: str, payload: dict) -> requests.Response:
        r = self._send(url, payload)
        hops = 0
        while r.status_code in REDIRECT_CODES and r.headers.get('Location'):
            if hops >= MAX_REDIRECTS:
                r.close()
                raise UnraidApiError(ErrorCode.CONNECTION_ERROR, f"Too many redirects (more than {MAX_REDIRECTS})",
                                     details={'url': url}, retryable=True)
            hops += 1
            url = urljoin(url, r.headers['Location'])
            log.debug(f"Following redirect {hops}/{MAX_REDIRECTS} to {url}")
            r.close()
            r = self._send(url, payload)
        return r

    def _decode(self, r: requests.Response, model: Any) -> Any:
        if r.status_code < 200 or r.status_code >= 300:
            log.debug(f"HTTP {r.status_code} from {r.url}")
            raise http_error(r.status_code, r.reason or "")

        body = r.text
        try:
            parsed = json.loads(body)
        except ValueError as exc:
            raise UnraidApiError(ErrorCode.VALIDATION_ERROR, "Invalid JSON response from server",
                                 details={'body': body[:BODY_SNIPPET_LENGTH]}, retryable=False) from exc

        try:
            envelope = GraphQLEnvelope.model_validate(parsed)
        except ValidationError as exc:
            raise UnraidApiError(ErrorCode.VALIDATION_ERROR, "Invalid response format from server",
                                 details={'envelope_errors': exc.errors(include_url=False)},
                                 retryable=False) from exc

        if envelope.errors:
            first = envelope.errors[0]
            raise UnraidApiError(graphql_error_code(first), first.message,
                                 details={'graphql_errors': [e.model_dump() for e in envelope.errors]},
                                 retryable=False)

        if envelope.data is None:
            raise UnraidApiError(ErrorCode.SERVER_ERROR, "Server returned null data", retryable=True)

        return validate_payload(envelope.data, model)

    # Connection tests

    def test_connection(self) -> bool:
        try:
            return self.execute(queries.ONLINE_QUERY, model=schemas.OnlineStatus).online
        except UnraidApiError as exc:
            log.debug(f"Connection test failed: {exc.code.value} {exc.message}")
            return False

    def test_connection_detailed(self) -> Dict[str, Any]:
        try:
            result = self.execute(queries.ONLINE_QUERY, model=schemas.OnlineStatus)
        except UnraidApiError as exc:
            return {'success': False, 'error': exc.message, 'code': exc.code.value}
        if not result.online:
            return {'success': False, 'error': 'Server reports offline status', 'code': None}
        return {'success': True, 'error': None, 'code': None}

    # Read queries

    def system_info(self) -> schemas.SystemInfo:
        return self.execute(queries.SYSTEM_INFO_QUERY, model=schemas.SystemInfo)

    def storage_info(self) -> schemas.StorageInfo:
        return self.execute(queries.STORAGE_INFO_QUERY, model=schemas.StorageInfo)

    def docker_containers(self) -> List[schemas.DockerContainer]:
        return self.execute(queries.DOCKER_CONTAINERS_QUERY, model=schemas.DockerContainers).docker.containers

    def vms(self) -> List[schemas.VirtualMachine]:
        return self.execute(queries.VMS_QUERY, model=schemas.VirtualMachines).vms.domain

    # Container control

    def _container_action(self, mutation: str, action: str, container_id: str) -> schemas.ContainerState:
        result = self.execute(mutation, {'id': container_id}, schemas.ContainerMutation)
        state = getattr(result.docker, action)
        if state is None:
            raise UnraidApiError(ErrorCode.OPERATION_FAILED, f"Failed to {action} container - no response data",
                                 details={'id': container_id}, retryable=False)
        return state

    def start_container(self, container_id: str) -> schemas.ContainerState:
        return self._container_action(queries.START_CONTAINER_MUTATION, 'start', container_id)

    def stop_container(self, container_id: str) -> schemas.ContainerState:
        return self._container_action(queries.STOP_CONTAINER_MUTATION, 'stop', container_id)

    def restart_container(self, container_id: str) -> schemas.ContainerState:
        return self._container_action(queries.RESTART_CONTAINER_MUTATION, 'restart', container_id)

    # VM control

    def start_vm(self, vm_id: str) -> bool:
        return self.execute(queries.START_VM_MUTATION, {'id': vm_id}, schemas.VmMutation).vm.start is True

    def stop_vm(self, vm_id: str) -> bool:
        return self.execute(queries.STOP_VM_MUTATION, {'id': vm_id}, schemas.VmMutation).vm.stop is True

    # Array control

    def start_array(self) -> schemas.ArrayState:
        return self.execute(queries.START_ARRAY_MUTATION, model=schemas.ArrayMutation).array.set_state

    def stop_array(self) -> schemas.ArrayState:
        log.warning(f"Stopping array on {self.config.host} - containers and VMs using the array will stop")
        return self.execute(queries.STOP_ARRAY_MUTATION, model=schemas.ArrayMutation).array.set_state

    # Parity check control

    def start_parity_check(self, correct: bool = False) -> bool:
        result = self.execute(queries.START_PARITY_CHECK_MUTATION, {'correct': correct}, schemas.ParityCheckMutation)
        return result.parity_check.start is True

    def pause_parity_check(self) -> bool:
        result = self.execute(queries.PAUSE_PARITY_CHECK_MUTATION, model=schemas.ParityCheckMutation)
        return result.parity_check.pause is True

    def resume_parity_check(self) -> bool:
        result = self.execute(queries.RESUME_PARITY_CHECK_MUTATION, model=schemas.ParityCheckMutation)
        return result.parity_check.resume is True

    def cancel_parity_check(self) -> bool:
        result = self.execute(queries.CANCEL_PARITY_CHECK_MUTATION, model=schemas.ParityCheckMutation)
        return result.parity_check.cancel is True

    # Disk control

    def spin_up_disk(self, disk_id: str) -> bool:
        return self.execute(queries.SPIN_UP_DISK_MUTATION, {'id': disk_id}, schemas.DiskSpinMutation).disk.spin_up is True

    def spin_down_disk(self, disk_id: str) -> bool:
        result = self.execute(queries.SPIN_DOWN_DISK_MUTATION, {'id': disk_id}, schemas.DiskSpinMutation)
        return result.disk.spin_down is True


def execute_query(config: ConnectionConfig, query: str, variables: Optional[Dict[str, Any]] = None,
                  model: Any = None, discovery: Optional[SslDiscovery] = None,
                  session: Optional[requests.Session] = None) -> Any:
    """One-shot form of UnraidClient.execute()."""
    client = UnraidClient(config, discovery=discovery, session=session)
    try:
        return client.execute(query, variables, model)
    finally:
        if session is None:
            client.close()
