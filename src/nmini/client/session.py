"""
    a session is the relays for a single invocation. Build it, fetch or send, disconnect.
    Every relay in the session is connected through the proxy, by default the local tor socks port,
    relays are only ever the ones we're given
"""
from __future__ import annotations

import sys
import logging
import asyncio
from enum import Enum
from typing import Callable
from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator
from nmini.client.client import RelayClient, Client
from nmini.event.event import Event
from nmini.exception import ConfigError, SessionStateError

# local tor socks port
DEFAULT_PROXY = 'socks5://127.0.0.1:9050'
# used for connect and fetch
DEFAULT_TIMEOUT = 60

GROUP_ARITY_ERROR = 'relays list should be len 1 or the same as the len of the events'


class SessionConfig:

    def __init__(self,
                 proxy: str | None = DEFAULT_PROXY,
                 timeout: float = DEFAULT_TIMEOUT,
                 ssl=None):
        # None to connect direct
        self.proxy = proxy
        self.timeout = timeout
        # as aiohttp, False disables cert checks
        self.ssl = ssl

    def make_client(self, relay_url: str) -> RelayClient:
        return Client(relay_url,
                      proxy=self.proxy,
                      timeout=self.timeout,
                      ssl=self.ssl)


class SessionState(Enum):
    BUILDING = 1
    CONNECTING = 2
    READY = 3
    CLOSED = 4


def print_err(msg: str):
    print(f'error: {msg}', file=sys.stderr)


def check_relay_url(relay_url: str) -> str:
    validator = (
        Validator()
        .require_presence_of('scheme', 'host')
        .allow_schemes('ws', 'wss')
        .check_validity_of('scheme', 'host', 'port', 'path')
    )
    try:
        url = uri_reference(relay_url.strip()).normalize()
        validator.validate(url)
    except UnpermittedComponentError:
        raise ConfigError(f'invalid relay url {relay_url}') from ValueError('relay url should be ws:// or wss://')
    except (ValidationError, AttributeError) as e:
        raise ConfigError(f'invalid relay url {relay_url}') from e
    if not url.host:
        raise ConfigError(f'invalid relay url {relay_url}') from ValueError('relay url has no host')
    return relay_url


def distinct_relays(relay_groups: list[list[str]]) -> list[str]:
    # in the order first given
    ret = []
    for c_group in relay_groups:
        for c_url in c_group:
            if c_url not in ret:
                ret.append(c_url)
    return ret


class RelaySession:
    """
        use as
            async with await RelaySession.build([relays...]) as session:
                evts = await session.fetch(filter)
        disconnect happens on leaving the with however we leave
    """

    @staticmethod
    async def build(relay_groups: list[list[str]],
                    config: SessionConfig = None,
                    client_factory: Callable[[str], RelayClient] = None) -> RelaySession:
        """
            connect to every relay in relay_groups, a relay that fails to connect is printed and we carry on
            without it. Only a bad url is an error
        """
        if config is None:
            config = SessionConfig()
        if client_factory is None:
            client_factory = config.make_client

        ret = RelaySession(config)
        for c_url in distinct_relays(relay_groups):
            ret.add(c_url, client_factory(check_relay_url(c_url)))

        try:
            await ret.connect()
        except BaseException:
            await ret.disconnect()
            raise
        return ret

    def __init__(self, config: SessionConfig):
        self._config = config
        self._state = SessionState.BUILDING

        # all relays added keyed on url
        self._clients: dict[str, RelayClient] = {}
        # those we connected to
        self._connected: dict[str, RelayClient] = {}
        # url to why we couldn't connect
        self._connect_errors: dict[str, Exception] = {}

    def add(self, relay_url: str, client: RelayClient):
        if self._state != SessionState.BUILDING:
            raise SessionStateError(f'can\'t add relay {relay_url}, session is {self._state.name.lower()}')
        self._clients[relay_url] = client

    async def connect(self):
        """
            connect everyone at once, waits at most the config timeout. Whatever is connected by then
            is what we have
        """
        if self._state != SessionState.BUILDING:
            raise SessionStateError(f'session is {self._state.name.lower()}, can only connect once')
        self._state = SessionState.CONNECTING

        async def do_connect(relay_url: str, client: RelayClient):
            try:
                await client.connect(self._config.timeout)
                self._connected[relay_url] = client
            except asyncio.CancelledError:
                self._connect_errors[relay_url] = asyncio.TimeoutError('timed out')
                raise
            except Exception as e:
                self._connect_errors[relay_url] = e

        tasks = [asyncio.create_task(do_connect(url, client)) for url, client in self._clients.items()]
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=self._config.timeout)
            for c_task in pending:
                c_task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for c_url, c_err in self._connect_errors.items():
            print_err(f'{c_url} connecting {describe(c_err)}')

        logging.debug(f'RelaySession::connect {len(self._connected)} of {len(self._clients)} relays connected')

        # we only got here if the session wasn't disconnected mid connect
        if self._state == SessionState.CONNECTING:
            self._state = SessionState.READY

    def _check_ready(self, operation: str):
        if self._state != SessionState.READY:
            raise SessionStateError.not_ready(self._state, operation)

    async def fetch(self, filter: dict, timeout: float = None) -> list[Event]:
        """
            query every connected relay with filter until they've all sent EOSE or timeout.
            Returned events are unique on id, the first copy we saw is the one kept
        """
        self._check_ready('fetch')
        if timeout is None:
            timeout = self._config.timeout

        ret = {}

        def do_event(client: RelayClient, evt: Event):
            if evt.id not in ret:
                ret[evt.id] = evt

        async def do_query(client: RelayClient):
            try:
                await client.query(filter, do_event=do_event, timeout=timeout)
            except Exception as e:
                logging.debug(f'RelaySession::fetch {client.url} - {describe(e)}')

        tasks = [asyncio.create_task(do_query(c_client)) for c_client in self._connected.values()]
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=timeout)
            for c_task in pending:
                c_task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        return list(ret.values())

    async def _publish(self, evt: Event, relays: list[str]):
        async def do_publish(relay_url: str):
            try:
                if relay_url not in self._connected:
                    raise ConnectionError('not connected')
                msg = await self._connected[relay_url].publish(evt, timeout=self._config.timeout)
                logging.debug(f'RelaySession::_publish {evt.id} to {relay_url} ok {msg}')
            except Exception as e:
                print_err(f'{relay_url} sending event {describe(e)}')

        # a url given twice would be two publishes of the same event on one connection
        await asyncio.gather(*[do_publish(c_url) for c_url in distinct_relays([relays])])

    async def send(self, events: list[Event], relay_groups: list[list[str]], out=None):
        """
            each event goes to its own group of relays, either a single group for everything or a group for
            each event (index aligned). Relays that fail are printed and we carry on
        """
        relay_groups = check_groups(events, relay_groups)
        self._check_ready('send')
        if out is None:
            out = sys.stdout

        for i, c_evt in enumerate(events):
            await self._publish(c_evt, relay_groups[i])
            print(f'event {i + 1} sent', file=out)

    async def disconnect(self):
        """
            safe to call any number of times in any state
        """
        if self._state == SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED

        results = await asyncio.gather(*[c_client.close() for c_client in self._clients.values()],
                                       return_exceptions=True)
        for c_client, c_res in zip(self._clients.values(), results):
            if isinstance(c_res, Exception):
                logging.debug(f'RelaySession::disconnect {c_client.url} - {c_res}')
        self._connected = {}

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def relays(self) -> list[str]:
        return list(self._clients.keys())

    @property
    def connected_relays(self) -> list[str]:
        return list(self._connected.keys())

    @property
    def connect_errors(self) -> dict[str, Exception]:
        return dict(self._connect_errors)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


def check_groups(events: list, relay_groups: list[list[str]]) -> list[list[str]]:
    """
        returns a group for each event, raises if there isn't 1 group or 1 per event
    """
    if len(relay_groups) == 1:
        ret = relay_groups * len(events)
    elif len(relay_groups) == len(events):
        ret = relay_groups
    else:
        raise ConfigError(GROUP_ARITY_ERROR)
    return ret


def describe(e: BaseException) -> str:
    ret = str(e)
    if not ret:
        ret = e.__class__.__name__
    return ret
