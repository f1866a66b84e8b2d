import asyncio
import pytest
from nmini.client.client import RelayClient
from nmini.client.session import SessionConfig
from nmini.encrypt import Keys
from nmini.event.event import Event
from nmini.exception import QueryClosedException, PublishException


class FakeRelays:
    """
        stands in for the network, set how each relay url behaves then hand .make_client to the session
    """
    def __init__(self):
        self._relays = {}
        self.made = []
        self.published = {}
        self.closed = []

    def relay(self, url,
              events=None,
              connect_error: str = None,
              connect_hang: bool = False,
              query_closed: str = None,
              publish_error: str = None):
        self._relays[url] = {
            'events': events or [],
            'connect_error': connect_error,
            'connect_hang': connect_hang,
            'query_closed': query_closed,
            'publish_error': publish_error
        }

    def info(self, url) -> dict:
        if url not in self._relays:
            self.relay(url)
        return self._relays[url]

    def make_client(self, url) -> RelayClient:
        self.made.append(url)
        return FakeClient(url, self)


class FakeClient(RelayClient):

    def __init__(self, url, relays: FakeRelays):
        self._url = url
        self._relays = relays

    @property
    def url(self) -> str:
        return self._url

    async def connect(self, timeout: float = None):
        info = self._relays.info(self._url)
        if info['connect_hang']:
            await asyncio.sleep(3600)
        if info['connect_error']:
            raise ConnectionError(info['connect_error'])

    async def query(self, filters, do_event=None, timeout: float = None):
        info = self._relays.info(self._url)
        if info['query_closed']:
            raise QueryClosedException(info['query_closed'])

        ret = []
        for c_evt in info['events']:
            if c_evt.test(filters):
                ret.append(c_evt)
                if do_event:
                    do_event(self, c_evt)
            # let the other relays in
            await asyncio.sleep(0)
        return ret

    async def publish(self, evt: Event, timeout: float = None) -> str:
        info = self._relays.info(self._url)
        if info['publish_error']:
            raise PublishException(info['publish_error'])
        self._relays.published.setdefault(self._url, []).append(evt.id)
        return ''

    async def close(self):
        self._relays.closed.append(self._url)


@pytest.fixture
def fake_relays() -> FakeRelays:
    return FakeRelays()


@pytest.fixture
def test_config() -> SessionConfig:
    return SessionConfig(proxy=None, timeout=0.5)


@pytest.fixture
def author_k() -> Keys:
    return Keys()


@pytest.fixture
def make_event(author_k):
    def _make_event(content='hello', kind=Event.KIND_TEXT_NOTE, tags=None, created_at=None, k: Keys = None):
        if k is None:
            k = author_k
        ret = Event(kind=kind,
                    content=content,
                    tags=tags,
                    pub_key=k.public_key_hex(),
                    created_at=created_at)
        ret.sign(k.private_key_hex())
        return ret
    return _make_event
