import asyncio
from unittest.mock import Mock

import pytest

from errors import GatewayError
from transport.rest import GraphQLClient, RestClient


def response(body, status=200):
    resp = Mock()
    resp.status_code = status
    resp.headers = {}
    resp.reason = ''
    resp.content = b'{}'
    resp.json.return_value = body
    return resp


def make_client(*bodies, token='tok'):
    session = Mock()
    session.request.side_effect = [response(b) for b in bodies]
    return RestClient('https://bitbucket.example.com/base', token=token, timeout=4, session=session, service='bitbucket'), session


def test_build_url_keeps_base_path():
    client, _ = make_client()
    assert client.build_url('/rest/api/latest/x') == 'https://bitbucket.example.com/base/rest/api/latest/x'


def test_get_sends_auth_header():
    client, session = make_client({'id': 'abc'})
    assert asyncio.run(client.get('rest/api/latest/x', {'a': 1})) == {'id': 'abc'}
    args, kwargs = session.request.call_args
    assert args == ('GET', 'https://bitbucket.example.com/base/rest/api/latest/x')
    assert kwargs['headers']['Authorization'] == 'Bearer tok'
    assert kwargs['timeout'] == 4


def test_no_auth_header_without_token():
    client, _ = make_client(token=None)
    assert 'Authorization' not in client.headers


def test_get_paged_follows_pages():
    client, session = make_client(
        {'values': [1, 2], 'isLastPage': False, 'nextPageStart': 2},
        {'values': [3], 'isLastPage': True},
    )
    assert asyncio.run(client.get_paged('items', {'from': 'b'})) == [1, 2, 3]
    starts = [c.kwargs['params']['start'] for c in session.request.call_args_list]
    assert starts == [0, 2]
    assert session.request.call_args_list[1].kwargs['params']['from'] == 'b'


def test_get_paged_rejects_non_object():
    client, _ = make_client([1, 2])
    with pytest.raises(GatewayError):
        asyncio.run(client.get_paged('items'))


def test_graphql_returns_data():
    client, session = make_client({'data': {'application': None}})
    data = asyncio.run(GraphQLClient(client).query('query { x }', {'a': 1}))
    assert data == {'application': None}
    args, kwargs = session.request.call_args
    assert args == ('POST', 'https://bitbucket.example.com/base/graphql')
    assert kwargs['json'] == {'query': 'query { x }', 'variables': {'a': 1}}


def test_graphql_errors_raise():
    client, _ = make_client({'errors': [{'message': 'unknown app'}], 'data': None})
    with pytest.raises(GatewayError) as excinfo:
        asyncio.run(GraphQLClient(client).query('query { x }'))
    assert 'unknown app' in str(excinfo.value)


def test_graphql_without_data_raises():
    client, _ = make_client({})
    with pytest.raises(GatewayError):
        asyncio.run(GraphQLClient(client).query('query { x }'))
