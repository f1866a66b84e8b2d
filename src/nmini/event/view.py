"""
    events and rumors as json for people to read, key order here is the order printed
"""
import json
from json import JSONDecodeError
from nmini.event.event import Event
from nmini.encrypt import Keys
from nmini.util import util_funcs

SEALED_WARNING = 'pubkey of the sealed event is not the same as the one in the rumor'


def _content_value(content: str):
    # content is often json itself, if so show it as that
    try:
        return json.loads(content)
    except JSONDecodeError:
        return content


def key_info(pub_k: str) -> dict:
    return {
        'bech32': Keys.hex_to_bech32(pub_k),
        'hex': pub_k
    }


def event_info(evt: Event) -> dict:
    """
        the short form used when printing fetched events
    """
    return {
        'kind': evt.kind,
        'created_at': util_funcs.ticks_as_str(evt.created_at_ticks),
        'content': _content_value(evt.content),
        'tags': evt.tags.tags
    }


def rumor_info(evt: Event, extra: dict = None) -> dict:
    ret = {
        'id': evt.id,
        'pubkey': key_info(evt.pub_key),
        'created_at': {
            'timestamp': evt.created_at_ticks,
            'date': util_funcs.ticks_as_str(evt.created_at_ticks)
        },
        'kind': evt.kind,
        'tags': evt.tags.tags,
        'content': _content_value(evt.content)
    }
    if extra:
        ret.update(extra)
    return ret


def unwrapped_info(sealed_by: str, rumor: Event) -> dict:
    """
        rumor_info of an unwrapped gift wrap, flagged if who sealed it isn't who the rumor says it's from
    """
    extra = None
    if sealed_by != rumor.pub_key:
        extra = {
            'warning': SEALED_WARNING,
            'sealed': key_info(sealed_by)
        }
    return rumor_info(rumor, extra)
