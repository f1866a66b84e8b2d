from __future__ import annotations
from datetime import datetime
import json
import logging
import hashlib
import secp256k1
from nmini.util import util_funcs


class EventTags:
    """
        split out so we can use event tags without have to create the whole event
    """
    def __init__(self, tags):
        self.tags = tags

    @property
    def tags(self):
        return self._tags

    @tags.setter
    def tags(self, tags):
        if tags is None:
            tags = []
        if not isinstance(tags, list) or \
                not all(isinstance(c_tag, list) and all(isinstance(v, str) for v in c_tag) for c_tag in tags):
            raise ValueError(f'tags should be an array of string arrays - {tags}')
        self._tags = tags

    def get_tags(self, tag_name: str):
        """
        returns tag data for tag_name, no checks on the data e.g. that #e, event id is long enough to be valid event
        """
        return [t[1:] for t in self._tags if len(t) >= 1 and t[0] == tag_name]

    def get_tags_value(self, tag_name: str) -> list[str]:
        """
        returns [] containing the 1st value field for a given tag, in many cases this is all we want
        if not use get_tags
        """
        return [t[0] for t in self.get_tags(tag_name) if t]

    def get_tag_value_pos(self, tag_name: str, pos: int = 0, default: str = None) -> str:
        """
            returns tag value (first el after tag name) for given tag_name at pos,
            if there isn't a tag at that pos then default is returned
        """
        ret = default
        vals = self.get_tags_value(tag_name)
        if len(vals) > pos:
            ret = vals[pos]
        return ret

    def __iter__(self):
        for c_tag in self._tags:
            yield c_tag


class Event:
    """
        a nostr event, signed or not. Unsigned events are what NIP59 calls rumors, they still have an id
        see https://github.com/nostr-protocol/nips/blob/master/01.md
    """
    KIND_META = 0
    KIND_TEXT_NOTE = 1

    # NIP59 seal and gift wrap as defined in  https://github.com/nostr-protocol/nips/blob/master/59.md
    KIND_SEAL = 13
    KIND_GIFT_WRAP = 1059

    # NIP17 private direct message, what's inside the seal
    # https://github.com/nostr-protocol/nips/blob/master/17.md
    KIND_PRIVATE_DM = 14

    # NIP65 relay list https://github.com/nostr-protocol/nips/blob/master/65.md
    KIND_RELAY_LIST = 10002
    # NIP17 relays where the user wants to receive dms
    KIND_INBOX_RELAYS = 10050

    @staticmethod
    def load(event_data: str | dict, validate=False) -> Event:
        """
            return a Event object either from a dict or json str
            if validate is set True will test the event sig, if it's not valid None will be returned
        """
        if isinstance(event_data, str):
            event_data = json.loads(event_data)

        if not isinstance(event_data, dict):
            raise ValueError(f'event should be a json object - {event_data}')

        for c_field in ('pubkey', 'created_at', 'kind', 'tags', 'content'):
            if c_field not in event_data:
                raise ValueError(f'event missing field {c_field}')

        created_at = util_funcs.u64_from_value(event_data, 'created_at')
        kind = util_funcs.u64_from_value(event_data, 'kind')
        if not isinstance(event_data['content'], str):
            raise ValueError('event content should be a string')

        ret = Event(
            id=event_data.get('id'),
            sig=event_data.get('sig'),
            kind=kind,
            content=event_data['content'],
            tags=event_data['tags'],
            pub_key=event_data['pubkey'],
            created_at=created_at
        )

        # None ret if validating and the event is not valid
        if validate is True and ret.is_valid() is False:
            ret = None

        return ret

    @staticmethod
    def is_event_id(event_id: str):
        """
        basic check that given str is a nostr event id
        """
        ret = False
        if isinstance(event_id, str) and len(event_id) == 64:
            # and also hex, will throw otherwise
            try:
                bytes.fromhex(event_id)
                ret = True
            except ValueError:
                pass
        return ret

    @staticmethod
    def sort(evts: list[Event], reverse=True, inplace=False):
        """
        :param evts:    events to be sorted
        :param reverse: True is newest first which is default
        :param inplace: act on evts or create new []
        :return: sorted events
        """
        def sort_func(evt: Event):
            return evt.created_at_ticks

        if inplace:
            evts.sort(key=sort_func, reverse=reverse)
        else:
            evts = sorted(evts, key=sort_func, reverse=reverse)
        return evts

    def __init__(self, id=None, sig=None, kind=KIND_TEXT_NOTE, content='', tags=None, pub_key=None, created_at=None):
        self._id = id
        self._sig = sig
        self._kind = kind
        self._created_at = created_at
        # normally the case when creating a new event
        if created_at is None:
            self._created_at = util_funcs.date_as_ticks(datetime.now())
        elif isinstance(self._created_at, datetime):
            self._created_at = util_funcs.date_as_ticks(self._created_at)

        # content forced to str
        self._content = str(content)

        self._pub_key = pub_key

        if isinstance(tags, EventTags):
            self._tags = tags
        else:
            self._tags = EventTags(tags)

    def serialize(self):
        """
            see https://github.com/nostr-protocol/nips/blob/master/01.md
        """
        if self._pub_key is None:
            raise ValueError('Event::serialize can\'t be done unless pub key is set')

        ret = json.dumps([
            0,
            self._pub_key,
            self._created_at,
            self._kind,
            self._tags.tags,
            self._content
        ], separators=(',', ':'), ensure_ascii=False)

        return ret

    def _calc_id(self) -> str:
        return hashlib.sha256(self.serialize().encode('utf-8')).hexdigest()

    def _invalidate(self):
        # should be called on any property set, as this will no longer be valid
        self._id = None
        self._sig = None

    def sign(self, priv_key: str):
        """
            pub key must be set, the id is always recalculated before signing
        """
        self._id = self._calc_id()

        pk = secp256k1.PrivateKey(bytes.fromhex(priv_key), raw=True)
        sig = pk.schnorr_sign(bytes.fromhex(self._id), bip340tag='', raw=True)
        self._sig = sig.hex()

    def is_valid(self) -> bool:
        """
            True if id is the hash of the event and sig verifies under pubkey
        """
        ret = False
        try:
            if self._sig and self._id == self._calc_id():
                pub_key = secp256k1.PublicKey(bytes.fromhex('02'+self._pub_key),
                                              raw=True)

                ret = pub_key.schnorr_verify(
                    msg=bytes.fromhex(self._id),
                    schnorr_sig=bytes.fromhex(self._sig),
                    bip340tag='', raw=True)
        except Exception as e:
            logging.debug(f'Event::is_valid {self._id} - {e}')
        return ret

    def data(self) -> dict:
        return {
            'id': self.id,
            'pubkey': self._pub_key,
            'created_at': self._created_at,
            'kind': self._kind,
            'tags': self._tags.tags,
            'content': self._content,
            'sig': self._sig
        }

    def rumor_data(self) -> dict:
        # as data but unsigned events don't carry a sig field at all
        ret = self.data()
        del ret['sig']
        return ret

    def test(self, filter) -> bool:
        """
            does this event match filter, filter is {} or [{}..] where any matching is a match
            within a single filter all given fields must match
        """
        def _test_tag_match(t_type, single_filter):
            t_lookup = {c_tag[1] for c_tag in self._tags if len(c_tag) > 1 and c_tag[0] == t_type}
            t_filter = single_filter['#'+t_type]
            if not isinstance(t_filter, list):
                t_filter = [str(t_filter)]
            return any(c_t in t_lookup for c_t in t_filter)

        if isinstance(filter, dict):
            filter = [filter]

        ret = False
        for c_filter in filter:
            ret = True
            if 'since' in c_filter and self.created_at_ticks < c_filter['since']:
                ret = False
            if 'until' in c_filter and self.created_at_ticks > c_filter['until']:
                ret = False
            if 'kinds' in c_filter and self.kind not in c_filter['kinds']:
                ret = False
            if 'authors' in c_filter and self.pub_key not in c_filter['authors']:
                ret = False
            if 'ids' in c_filter and self.id not in c_filter['ids']:
                ret = False

            # generic tags start with #
            for c_name in c_filter:
                if c_name[0] == '#' and not _test_tag_match(c_name[1:], c_filter):
                    ret = False

            # multiple filters are joined so a pass on any and we're out of here
            if ret:
                break

        return ret

    @property
    def tags(self) -> EventTags:
        return self._tags

    @tags.setter
    def tags(self, tags):
        self._invalidate()
        if isinstance(tags, EventTags):
            self._tags = tags
        else:
            self._tags = EventTags(tags)

    def get_tags(self, tag_name):
        return self._tags.get_tags(tag_name)

    def get_tags_value(self, tag_name):
        return self._tags.get_tags_value(tag_name)

    def get_tag_value_pos(self, tag_name: str, pos: int = 0, default: str = None) -> str:
        return self._tags.get_tag_value_pos(tag_name=tag_name,
                                            pos=pos,
                                            default=default)

    """
        get/set various event properties
        Note changing is going to make event that has been signed incorrect
    """

    @property
    def pub_key(self):
        return self._pub_key

    @pub_key.setter
    def pub_key(self, pub_key):
        self._invalidate()
        self._pub_key = pub_key

    @property
    def id(self):
        if self._id is None:
            self._id = self._calc_id()
        return self._id

    @property
    def short_id(self):
        return util_funcs.str_tails(self.id, 4)

    @property
    def created_at_ticks(self) -> int:
        return self._created_at

    @property
    def kind(self) -> int:
        return self._kind

    @kind.setter
    def kind(self, kind: int):
        self._invalidate()
        self._kind = kind

    @property
    def content(self) -> str:
        return self._content

    @content.setter
    def content(self, content):
        self._invalidate()
        self._content = content

    @property
    def sig(self):
        return self._sig
