"""
    web socket network stuff for a single relay

    unlike a long running client we connect once, do what we need and close, nothing is retried
"""
from __future__ import annotations

import logging
import asyncio
import json
from abc import ABC, abstractmethod
from typing import Callable
import aiohttp
from aiohttp_socks import ProxyConnector
from nmini.util import util_funcs
from nmini.event.event import Event
from nmini.exception import QueryClosedException, PublishException


class RelayClient(ABC):
    """
        what the session needs from a relay connection
    """

    @property
    @abstractmethod
    def url(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def connect(self, timeout: float = None):
        raise NotImplementedError

    @abstractmethod
    async def query(self,
                    filters: dict | list[dict],
                    do_event: Callable[[RelayClient, Event], None] = None,
                    timeout: float = None) -> list[Event]:
        raise NotImplementedError

    @abstractmethod
    async def publish(self, evt: Event, timeout: float = None) -> str:
        raise NotImplementedError

    @abstractmethod
    async def close(self):
        raise NotImplementedError


class Client(RelayClient):

    def __init__(self,
                 relay_url: str,
                 proxy: str = None,
                 timeout: float = 60,
                 ping_timeout: int = 30,
                 ssl=None):

        # url of relay to connect
        self._url = relay_url

        # socks5://host:port all traffic goes through, None for direct
        self._proxy = proxy

        # default for connect, query and publish when not given
        self._timeout = timeout

        # heartbeat of the ws
        self._ping_timeout = ping_timeout

        # as aiohttp see https://docs.aiohttp.org/en/stable/client_reference.html
        # set False to disable SSL verification checks
        self._ssl = ssl

        self._session: aiohttp.ClientSession = None
        self._ws: aiohttp.ClientWebSocketResponse = None
        self._consumer_task: asyncio.Task = None

        # open subscriptions keyed on sub_id
        self._subs = {}

        # events we've published waiting on OK keyed on event id
        self._oks = {}

        self._closed = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def _get_connector(self) -> ProxyConnector | None:
        ret = None
        if self._proxy:
            # rdns so the proxy does the name lookups, needed for .onion
            ret = ProxyConnector.from_url(self._proxy, rdns=True)
        return ret

    async def connect(self, timeout: float = None):
        if timeout is None:
            timeout = self._timeout

        ws_args = {
            'heartbeat': self._ping_timeout
        }
        # left out we get aiohttps default checks
        if self._ssl is not None:
            ws_args['ssl'] = self._ssl

        self._session = aiohttp.ClientSession(connector=self._get_connector())
        try:
            self._ws = await asyncio.wait_for(self._session.ws_connect(self._url, **ws_args),
                                              timeout)
        except BaseException:
            await self._session.close()
            self._session = None
            raise

        logging.debug('Client::connect connected %s' % self._url)
        self._consumer_task = asyncio.create_task(self._my_consumer())

    async def _my_consumer(self):
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        self._on_message(json.loads(msg.data))
                    except json.JSONDecodeError:
                        logging.debug(f'Client::_my_consumer - bad json from {self._url} - {msg.data}')
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logging.debug(f'Client::_my_consumer - ws error {self._url} - {self._ws.exception()}')
                    break
        finally:
            self._on_lost_connection()

    def _on_lost_connection(self):
        # anyone still waiting isn't going to get an answer now
        err = ConnectionError(f'lost connection to {self._url}')
        for c_wait in list(self._subs.values()) + list(self._oks.values()):
            done: asyncio.Future = c_wait['done']
            if not done.done():
                done.set_exception(err)

    def _on_message(self, message):
        if not isinstance(message, list) or not message:
            logging.debug(f'Client::_on_message - unexpected message {message}')
            return

        type = message[0]
        if type == 'EVENT':
            if len(message) >= 3:
                self._do_event(message[1], message[2])
            else:
                logging.debug(f'Client::_on_message - not enough data in EVENT message - {message}')
        elif type == 'EOSE':
            if len(message) >= 2:
                self._do_sub_done(message[1])
            else:
                logging.debug(f'Client::_on_message - not enough data in EOSE message - {message}')
        elif type == 'CLOSED':
            if len(message) >= 2:
                reason = message[2] if len(message) >= 3 else ''
                self._do_sub_done(message[1], QueryClosedException(f'subscription closed by relay {reason}'))
            else:
                logging.debug(f'Client::_on_message - not enough data in CLOSED message - {message}')
        elif type == 'OK':
            self._do_command(message)
        elif type == 'NOTICE':
            logging.debug(f'Client::_on_message - NOTICE from {self._url} - {message[1:]}')
        else:
            logging.debug(f'Client::_on_message unexpected type {type}')

    def _do_event(self, sub_id, evt_data):
        if sub_id not in self._subs:
            logging.debug(f'Client::_do_event event for unknown subscription {sub_id}')
            return

        the_sub = self._subs[sub_id]
        try:
            the_evt = Event.load(evt_data)
        except ValueError as ve:
            logging.debug(f'Client::_do_event bad event from {self._url} - {ve}')
            return

        if not the_evt.is_valid():
            logging.debug(f'Client::_do_event invalid event from {self._url} - {the_evt.id}')
            return
        if not the_evt.test(the_sub['filters']):
            logging.debug(f'Client::_do_event event from {self._url} not matching filter - {the_evt.id}')
            return

        the_sub['events'].append(the_evt)
        if the_sub['do_event']:
            the_sub['do_event'](self, the_evt)

    def _do_sub_done(self, sub_id, err: Exception = None):
        if sub_id not in self._subs:
            logging.debug(f'Client::_do_sub_done for unknown sub_id {sub_id}')
            return

        done: asyncio.Future = self._subs[sub_id]['done']
        if not done.done():
            if err:
                done.set_exception(err)
            else:
                done.set_result(True)

    def _do_command(self, message):
        if len(message) < 3:
            logging.debug(f'Client::_do_command - not enough data in OK message - {message}')
            return

        event_id, success = message[1], message[2]
        msg = message[3] if len(message) >= 4 else ''
        if event_id not in self._oks:
            logging.debug(f'Client::_do_command - OK for event we\'re not waiting on - {message}')
            return

        done: asyncio.Future = self._oks[event_id]['done']
        if not done.done():
            if success is True:
                done.set_result(msg)
            else:
                done.set_exception(PublishException(msg or 'rejected'))

    async def _send(self, cmd: list):
        if not self.connected:
            raise ConnectionError(f'not connected to {self._url}')
        the_str = json.dumps(cmd)
        logging.debug(f'Client::_send {self._url} - {the_str}')
        await self._ws.send_str(the_str)

    async def query(self,
                    filters: dict | list[dict],
                    do_event: Callable[[RelayClient, Event], None] = None,
                    timeout: float = None) -> list[Event]:
        """
            REQ and gather until EOSE, if we time out then what we have so far is returned.
            events are passed to do_event as they arrive
        """
        if timeout is None:
            timeout = self._timeout
        if isinstance(filters, dict):
            filters = [filters]

        sub_id = util_funcs.get_rnd_hex_str(8)
        the_sub = self._subs[sub_id] = {
            'filters': filters,
            'do_event': do_event,
            'events': [],
            'done': asyncio.get_running_loop().create_future()
        }

        try:
            await self._send(['REQ', sub_id] + filters)
            try:
                await asyncio.wait_for(the_sub['done'], timeout)
            except asyncio.TimeoutError:
                logging.debug(f'Client::query timeout {self._url} - {len(the_sub["events"])} events received')

            if self.connected:
                await self._send(['CLOSE', sub_id])
        finally:
            del self._subs[sub_id]

        logging.debug(f'Client::query {self._url} - {len(the_sub["events"])} events received')
        return the_sub['events']

    async def publish(self, evt: Event, timeout: float = None) -> str:
        """
            EVENT and wait for the relays OK, returns the message part
        """
        if timeout is None:
            timeout = self._timeout

        the_ok = self._oks[evt.id] = {
            'done': asyncio.get_running_loop().create_future()
        }
        try:
            await self._send(['EVENT', evt.data()])
            return await asyncio.wait_for(the_ok['done'], timeout)
        finally:
            self._oks.pop(evt.id, None)

    async def close(self):
        if self._closed:
            return
        self._closed = True

        if self._ws is not None:
            await self._ws.close()
        if self._consumer_task is not None:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
        if self._session is not None:
            await self._session.close()

        logging.debug('Client::close %s' % self._url)
