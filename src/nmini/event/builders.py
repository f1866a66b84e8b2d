"""
    make the events we sign ourself, metadata (NIP01/24), relay lists (NIP65/17) and the dm rumor (NIP17)
"""
from __future__ import annotations
import json
from enum import Enum
from rfc3986 import uri_reference
from rfc3986.exceptions import ValidationError
from rfc3986.validators import Validator
from nmini.event.event import Event
from nmini.encrypt import Keys
from nmini.signing import CryptoProvider
from nmini.giftwrap import GiftWrap


class Metadata:
    """
        profile metadata, fields we know about are checked, anything else is passed through as is
    """
    STR_FIELDS = ('name', 'display_name', 'about', 'nip05', 'lud06', 'lud16')
    URL_FIELDS = ('website', 'picture', 'banner')

    @staticmethod
    def _check_url(name: str, val: str):
        validator = (
            Validator()
            .require_presence_of('scheme')
            .check_validity_of('scheme', 'host', 'port', 'path', 'query', 'fragment')
        )
        url = uri_reference(val)
        try:
            validator.validate(url)
        except ValidationError as e:
            raise ValueError(f'{name} is not an absolute url - {val}') from e
        if url.scheme.lower() in ('http', 'https') and not url.host:
            raise ValueError(f'{name} is not an absolute url - {val}') from ValueError(f'{url.scheme} url has no host')

    @staticmethod
    def from_json(the_json: str | dict) -> Metadata:
        if isinstance(the_json, str):
            the_json = json.loads(the_json)
        return Metadata(the_json)

    def __init__(self, fields: dict):
        if not isinstance(fields, dict):
            raise ValueError(f'metadata should be a json object got {type(fields).__name__}')

        for c_name in Metadata.STR_FIELDS + Metadata.URL_FIELDS:
            if c_name in fields and not isinstance(fields[c_name], str):
                raise ValueError(f'{c_name} should be a string')

        for c_name in Metadata.URL_FIELDS:
            if c_name in fields:
                self._check_url(c_name, fields[c_name])

        # copy, the order given is the order we write
        self._fields = dict(fields)

    def as_json(self) -> str:
        return json.dumps(self._fields, ensure_ascii=False)

    def data(self) -> dict:
        return dict(self._fields)


class RelayListType(Enum):
    """
        value is (kind, tag name used for each relay)
    """
    STANDARD = (Event.KIND_RELAY_LIST, 'r')
    INBOX = (Event.KIND_INBOX_RELAYS, 'relay')

    @property
    def kind(self) -> int:
        return self.value[0]

    @property
    def tag_name(self) -> str:
        return self.value[1]

    @staticmethod
    def from_arg(the_arg: str) -> RelayListType:
        try:
            return RelayListType[the_arg.upper()]
        except KeyError:
            raise ValueError(f'{the_arg} is not a relay type') from None


async def metadata_event(metadata: Metadata, signer: CryptoProvider) -> Event:
    ret = Event(kind=Event.KIND_META,
                content=metadata.as_json())
    return await signer.ready_post(ret)


async def relay_list_event(list_type: RelayListType, relays: list[str], signer: CryptoProvider) -> Event:
    # no read/write marker, when there is it'd go after the url
    ret = Event(kind=list_type.kind,
                content='',
                tags=[[list_type.tag_name, c_url] for c_url in relays])
    return await signer.ready_post(ret)


async def dm_events(message: str, to_k: Keys, signer: CryptoProvider) -> list[Event]:
    """
        the dm rumor gift wrapped twice, once for to_k and once for us. Without our copy we'd never see what
        we sent when fetching back from relays
    """
    my_gift = GiftWrap(signer)
    rumor = await my_gift.make_rumor(Event(kind=Event.KIND_PRIVATE_DM,
                                           content=message,
                                           tags=[['p', to_k.public_key_hex()]]))

    return [
        await my_gift.wrap_rumor(rumor, to_k),
        await my_gift.wrap_rumor(rumor, await signer.get_public_key())
    ]
