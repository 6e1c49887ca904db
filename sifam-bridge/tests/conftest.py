import json as _json

import pytest
import requests


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None, headers=None, content=b""):
        self.status_code = status_code
        self._json = json_data
        self.headers = dict(headers or {})
        self.content = content
        if text is None:
            text = _json.dumps(json_data) if json_data is not None else content.decode("latin-1")
        self.text = text
        self.closed = False

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    """Records calls; answers from a handler(method, url, kwargs) or a queue of responses."""

    def __init__(self, handler=None, responses=None):
        self.handler = handler
        self.responses = list(responses or [])
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        if self.handler is not None:
            out = self.handler(method, url, kwargs)
        else:
            out = self.responses.pop(0)
        if isinstance(out, Exception):
            raise out
        return out


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def timeout_error():
    return requests.Timeout("read timed out")


def gql_page(connection, nodes, has_next=False, cursor=None):
    return {
        "data": {
            connection: {
                "edges": [{"cursor": f"c{i}", "node": n} for i, n in enumerate(nodes)],
                "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
            }
        }
    }
