"""Tests for the GraphQL query executor."""
from typing import Dict, List

import pytest
import requests
from unittest.mock import patch, MagicMock

from pyunraid import queries, schemas
from pyunraid.client import UnraidClient, classify_exception, execute_query, graphql_error_code, GraphQLError
from pyunraid.exceptions import ErrorCode, UnraidApiError
from pyunraid.models import ConnectionConfig, SslDiscoveryResult, SslMode

from pyunraid.tests.conftest import make_response


def redirect(location, status=302):
    return make_response(status, headers={'Location': location})


@pytest.fixture
def client(config, discovery, session):
    return UnraidClient(config, discovery=discovery, session=session)


def raises(client, code, **kwargs):
    with pytest.raises(UnraidApiError) as excinfo:
        client.execute(queries.ONLINE_QUERY, **kwargs)
    assert excinfo.value.code == code
    return excinfo.value


class TestExecute:
    def test_success(self, client, session):
        assert client.execute(queries.ONLINE_QUERY) == {"online": True}
        args, kwargs = session.post.call_args
        assert args[0] == "https://tower.local/graphql"
        assert kwargs['json'] == {'query': queries.ONLINE_QUERY, 'variables': {}}
        assert kwargs['headers'] == {'x-api-key': "test-key"}
        assert kwargs['allow_redirects'] is False
        assert kwargs['timeout'] == 10.0

    def test_variables_sent(self, client, session):
        client.execute(queries.START_VM_MUTATION, {'id': "vm-1"})
        assert session.post.call_args.kwargs['json']['variables'] == {'id': "vm-1"}

    def test_model_validation(self, client):
        result = client.execute(queries.ONLINE_QUERY, model=schemas.OnlineStatus)
        assert isinstance(result, schemas.OnlineStatus)
        assert result.online is True

    def test_typing_model_validation(self, client, session):
        session.post.return_value = make_response(body={"data": {"tags": ["a", "b"]}})
        assert client.execute("query { tags }", model=Dict[str, List[str]]) == {"tags": ["a", "b"]}

    @pytest.mark.parametrize("host", ["", "   "])
    def test_empty_host(self, host, discovery, session):
        client = UnraidClient(ConnectionConfig(host=host, api_key="k"), discovery=discovery, session=session)
        err = raises(client, ErrorCode.VALIDATION_ERROR)
        assert err.retryable is False
        discovery.discover.assert_not_called()
        session.post.assert_not_called()


class TestDiscovery:
    def test_discovery_runs_once(self, client, config, discovery):
        client.execute(queries.ONLINE_QUERY)
        client.execute(queries.ONLINE_QUERY)
        discovery.discover.assert_called_once_with("tower.local", 80, 443, timeout=10.0)
        assert config.ssl_mode == SslMode.YES
        assert config.resolved_url == "https://tower.local/graphql"

    def test_port_change_rediscovers(self, client, config, discovery):
        client.execute(queries.ONLINE_QUERY)
        config.https_port = 8443
        assert config.resolved_url is None
        client.execute(queries.ONLINE_QUERY)
        assert discovery.discover.call_count == 2
        assert discovery.discover.call_args.args == ("tower.local", 80, 8443)

    def test_preresolved_config_skips_discovery(self, discovery, session):
        config = ConnectionConfig(host="tower.local", api_key="k")
        config.apply_discovery(SslDiscoveryResult(url="http://tower.local:8080/graphql", ssl_mode=SslMode.NO,
                                                  verify_ssl=False, use_https=False, port=8080))
        UnraidClient(config, discovery=discovery, session=session).execute(queries.ONLINE_QUERY)
        discovery.discover.assert_not_called()
        assert session.post.call_args.args[0] == "http://tower.local:8080/graphql"

    @pytest.mark.parametrize("mode,verify", [
        (SslMode.NO, False),
        (SslMode.YES, False),
        (SslMode.STRICT, True),
    ])
    def test_verify_follows_ssl_mode(self, discovery, session, mode, verify):
        discovery.discover.return_value = SslDiscoveryResult(url="https://tower.local/graphql", ssl_mode=mode,
                                                             verify_ssl=verify, use_https=True, port=443)
        client = UnraidClient(ConnectionConfig(host="tower.local", api_key="k"), discovery=discovery,
                              session=session)
        client.execute(queries.ONLINE_QUERY)
        assert session.post.call_args.kwargs['verify'] is verify

    def test_invalidate(self, client, config, discovery):
        client.execute(queries.ONLINE_QUERY)
        client.invalidate()
        assert config.resolved_url is None
        discovery.invalidate.assert_called_once_with("tower.local")
        client.execute(queries.ONLINE_QUERY)
        assert discovery.discover.call_count == 2


class TestRedirects:
    def test_follows_redirects(self, client, session):
        session.post.side_effect = [
            redirect("https://tower.local:8443/graphql", 307),
            redirect("/api/graphql", 308),
            make_response(body={"data": {"online": True}}),
        ]
        assert client.execute(queries.ONLINE_QUERY) == {"online": True}
        urls = [c.args[0] for c in session.post.call_args_list]
        assert urls == [
            "https://tower.local/graphql",
            "https://tower.local:8443/graphql",
            "https://tower.local:8443/api/graphql",
        ]
        # Method, body and key are kept on every hop
        for c in session.post.call_args_list:
            assert c.kwargs['json']['query'] == queries.ONLINE_QUERY
            assert c.kwargs['headers'] == {'x-api-key': "test-key"}

    def test_five_redirects_allowed(self, client, session):
        session.post.side_effect = [redirect(f"/hop{i}") for i in range(5)] + \
            [make_response(body={"data": {"online": True}})]
        assert client.execute(queries.ONLINE_QUERY) == {"online": True}
        assert session.post.call_count == 6

    def test_sixth_redirect_fails(self, client, session):
        session.post.side_effect = [redirect(f"/hop{i}") for i in range(6)]
        err = raises(client, ErrorCode.CONNECTION_ERROR)
        assert "redirect" in err.message.lower()
        assert err.retryable is True
        assert session.post.call_count == 6

    def test_redirect_without_location_is_http_error(self, client, session):
        session.post.return_value = make_response(302)
        raises(client, ErrorCode.UNKNOWN_ERROR)


class TestHttpErrors:
    @pytest.mark.parametrize("status,code,retryable", [
        (401, ErrorCode.AUTHENTICATION_ERROR, False),
        (403, ErrorCode.AUTHENTICATION_ERROR, False),
        (404, ErrorCode.RESOURCE_NOT_FOUND, False),
        (429, ErrorCode.RATE_LIMITED, True),
        (500, ErrorCode.SERVER_ERROR, True),
        (502, ErrorCode.SERVER_ERROR, True),
        (503, ErrorCode.SERVER_ERROR, True),
        (504, ErrorCode.TIMEOUT_ERROR, True),
        (418, ErrorCode.UNKNOWN_ERROR, False),
    ])
    def test_status_mapping(self, client, session, status, code, retryable):
        session.post.return_value = make_response(status, reason="Reason")
        err = raises(client, code)
        assert err.retryable is retryable
        assert err.details['status'] == status
        assert err.message == f"HTTP {status}: Reason"

    def test_message_without_reason(self, client, session):
        session.post.return_value = make_response(401)
        assert raises(client, ErrorCode.AUTHENTICATION_ERROR).message == "HTTP 401"


class TestResponseErrors:
    def test_invalid_json(self, client, session):
        body = "<html>" + "x" * 500 + "</html>"
        session.post.return_value = make_response(body=body)
        err = raises(client, ErrorCode.VALIDATION_ERROR)
        assert err.retryable is False
        assert err.details['body'] == body[:200]

    @pytest.mark.parametrize("body", ['[1, 2]', '"text"', '{"errors": "nope"}'])
    def test_invalid_envelope(self, client, session, body):
        session.post.return_value = make_response(body=body)
        raises(client, ErrorCode.VALIDATION_ERROR)

    def test_null_data(self, client, session):
        session.post.return_value = make_response(body={"data": None})
        err = raises(client, ErrorCode.SERVER_ERROR)
        assert err.retryable is True

    @pytest.mark.parametrize("body", [{}, {"status": "ok"}])
    def test_neither_data_nor_errors(self, client, session, body):
        session.post.return_value = make_response(body=body)
        err = raises(client, ErrorCode.VALIDATION_ERROR)
        assert err.message == "Invalid response format from server"
        assert err.retryable is False
        assert err.details['envelope_errors']

    def test_errors_without_data_key(self, client, session):
        session.post.return_value = make_response(body={"errors": [{"message": "Unauthorized"}]})
        err = raises(client, ErrorCode.AUTHENTICATION_ERROR)
        assert err.retryable is False

    def test_graphql_error_code(self, client, session):
        session.post.return_value = make_response(body={
            "data": None,
            "errors": [{"message": "You need to log in", "extensions": {"code": "UNAUTHENTICATED"}},
                       {"message": "second"}],
        })
        err = raises(client, ErrorCode.AUTHENTICATION_ERROR)
        assert err.message == "You need to log in"
        assert err.retryable is False
        assert len(err.details['graphql_errors']) == 2

    def test_graphql_error_message(self, client, session):
        session.post.return_value = make_response(body={"errors": [{"message": "Container not found"}]})
        err = raises(client, ErrorCode.RESOURCE_NOT_FOUND)
        assert err.retryable is False

    def test_graphql_error_with_data(self, client, session):
        session.post.return_value = make_response(body={"data": {"online": True},
                                                        "errors": [{"message": "Internal server error"}]})
        err = raises(client, ErrorCode.SERVER_ERROR)
        assert err.retryable is False

    def test_shape_mismatch(self, client, session):
        session.post.return_value = make_response(body={"data": {"metrics": {"cpu": {"percentTotal": "high"}}}})
        with pytest.raises(UnraidApiError) as excinfo:
            client.execute(queries.SYSTEM_INFO_QUERY, model=schemas.SystemInfo)
        assert excinfo.value.code == ErrorCode.VALIDATION_ERROR
        assert excinfo.value.retryable is False
        assert excinfo.value.details['validation_errors']

    def test_unusable_model(self, client):
        class Opaque:
            pass

        with pytest.raises(UnraidApiError) as excinfo:
            client.execute(queries.ONLINE_QUERY, model=Opaque)
        assert excinfo.value.code == ErrorCode.VALIDATION_ERROR
        assert excinfo.value.retryable is False


@pytest.mark.parametrize("message,code", [
    ("Container not found", ErrorCode.RESOURCE_NOT_FOUND),
    ("Unauthorized", ErrorCode.AUTHENTICATION_ERROR),
    ("Forbidden resource", ErrorCode.AUTHENTICATION_ERROR),
    ("Internal server error", ErrorCode.SERVER_ERROR),
    ("Invalid input for field id", ErrorCode.VALIDATION_ERROR),
    ("Request timed out", ErrorCode.TIMEOUT_ERROR),
    ("Array must be stopped", ErrorCode.OPERATION_FAILED),
])
def test_graphql_message_patterns(message, code):
    assert graphql_error_code(GraphQLError(message=message)) == code


def test_graphql_code_wins_over_message():
    error = GraphQLError(message="thing not found", extensions={'code': "FORBIDDEN"})
    assert graphql_error_code(error) == ErrorCode.AUTHENTICATION_ERROR


class TestTransportErrors:
    @pytest.mark.parametrize("exc,code,fragment", [
        (requests.exceptions.ReadTimeout("Read timed out."), ErrorCode.TIMEOUT_ERROR, "timed out"),
        (requests.exceptions.ConnectionError("[Errno 111] Connection refused"), ErrorCode.CONNECTION_ERROR,
         "is the server running at tower.local"),
        (requests.exceptions.ConnectionError("[Errno -2] Name or service not known"), ErrorCode.CONNECTION_ERROR,
         "Could not resolve hostname: tower.local"),
        (requests.exceptions.ConnectionError("Connection reset by peer"), ErrorCode.CONNECTION_ERROR,
         "reset by peer"),
        (OSError("socket closed"), ErrorCode.CONNECTION_ERROR, "socket closed"),
    ])
    def test_exceptions_classified(self, client, session, exc, code, fragment):
        session.post.side_effect = exc
        err = raises(client, code)
        assert fragment in err.message
        assert err.retryable is True
        assert err.__cause__ is exc

    def test_discovery_failure_classified(self, client, discovery):
        discovery.discover.side_effect = requests.exceptions.ConnectTimeout("connect timeout")
        raises(client, ErrorCode.TIMEOUT_ERROR)

    def test_classify_exception_empty_message(self):
        err = classify_exception(RuntimeError(), "tower")
        assert err.code == ErrorCode.CONNECTION_ERROR
        assert err.message == "RuntimeError"


class TestHelpers:
    def test_test_connection(self, client):
        assert client.test_connection() is True

    def test_test_connection_failure(self, client, session):
        session.post.return_value = make_response(401)
        assert client.test_connection() is False

    def test_test_connection_detailed(self, client, session):
        assert client.test_connection_detailed() == {'success': True, 'error': None, 'code': None}
        session.post.return_value = make_response(403, reason="Forbidden")
        assert client.test_connection_detailed() == {'success': False, 'error': "HTTP 403: Forbidden",
                                                     'code': "AUTHENTICATION_ERROR"}
        session.post.return_value = make_response(body={"data": {"online": False}})
        assert client.test_connection_detailed()['success'] is False

    def test_system_info(self, client, session):
        session.post.return_value = make_response(body={"data": {
            "metrics": {"cpu": {"percentTotal": 12.5},
                        "memory": {"total": "34359738368", "used": "8589934592", "free": "25769803776",
                                   "percentTotal": 25.0}},
            "notifications": {"overview": {"unread": {"total": 3}}},
        }})
        info = client.system_info()
        assert info.cpu_usage == 12.5
        assert info.memory_percent == 25.0
        assert info.metrics.memory.total == 34359738368
        assert info.unread_notifications == 3

    def test_storage_info(self, client, session):
        session.post.return_value = make_response(body={"data": {"array": {
            "state": "STARTED",
            "capacity": {"kilobytes": {"free": "750", "used": "250", "total": "1000"}},
            "parityCheckStatus": {"status": "COMPLETED", "progress": 100},
            "disks": [{"id": "disk1", "name": "disk1", "status": "DISK_OK", "fsSize": 1000, "fsUsed": 400,
                       "isSpinning": False}],
        }}})
        array = client.storage_info().array
        assert array.total_size == 1024000
        assert array.usage_percent == pytest.approx(25.0)
        assert array.disks[0].usage_percent == pytest.approx(40.0)
        assert array.disks[0].is_spinning is False

    def test_docker_containers(self, client, session):
        session.post.return_value = make_response(body={"data": {"docker": {"containers": [
            {"id": "abc", "names": ["/plex"], "image": "plex:latest", "state": "RUNNING", "status": "Up 2 hours",
             "autoStart": True},
        ]}}})
        containers = client.docker_containers()
        assert containers[0].name == "plex"
        assert containers[0].running is True
        assert containers[0].auto_start is True

    def test_vms(self, client, session):
        session.post.return_value = make_response(body={"data": {"vms": {"domain": [
            {"uuid": "1234", "name": None, "state": "SHUTOFF"},
        ]}}})
        vms = client.vms()
        assert vms[0].display_name == "1234"
        assert vms[0].power_state == "SHUTOFF"

    def test_start_container(self, client, session):
        session.post.return_value = make_response(body={"data": {"docker": {
            "start": {"id": "abc", "state": "RUNNING", "status": "Up 1 second"}}}})
        state = client.start_container("abc")
        assert state.state == "RUNNING"
        assert session.post.call_args.kwargs['json'] == {'query': queries.START_CONTAINER_MUTATION,
                                                         'variables': {'id': "abc"}}

    def test_container_action_without_result(self, client, session):
        session.post.return_value = make_response(body={"data": {"docker": {"stop": None}}})
        with pytest.raises(UnraidApiError) as excinfo:
            client.stop_container("abc")
        assert excinfo.value.code == ErrorCode.OPERATION_FAILED

    def test_vm_and_disk_actions(self, client, session):
        session.post.return_value = make_response(body={"data": {"vm": {"start": True}}})
        assert client.start_vm("vm-1") is True
        session.post.return_value = make_response(body={"data": {"disk": {"spinDown": True}}})
        assert client.spin_down_disk("disk1") is True

    def test_parity_check(self, client, session):
        session.post.return_value = make_response(body={"data": {"parityCheck": {"start": True}}})
        assert client.start_parity_check(correct=True) is True
        assert session.post.call_args.kwargs['json']['variables'] == {'correct': True}

    def test_array_state(self, client, session):
        session.post.return_value = make_response(body={"data": {"array": {"setState": {"id": "array",
                                                                                       "state": "STOPPED"}}}})
        assert client.stop_array().state == "STOPPED"


def test_execute_query_closes_own_session(config, discovery):
    with patch('pyunraid.client.requests.Session') as mock_session_cls:
        session = MagicMock()
        session.post.return_value = make_response(body={"data": {"online": True}})
        mock_session_cls.return_value = session
        assert execute_query(config, queries.ONLINE_QUERY, discovery=discovery) == {"online": True}
    session.close.assert_called_once()


def test_execute_query_keeps_caller_session(config, discovery, session):
    execute_query(config, queries.ONLINE_QUERY, discovery=discovery, session=session)
    session.close.assert_not_called()


def test_context_manager_closes_session(config, discovery, session):
    with UnraidClient(config, discovery=discovery, session=session):
        pass
    session.close.assert_called_once()
