import json
import hashlib
import pytest
from nmini.event.event import Event
from nmini.encrypt import Keys


def test_sign_valid(make_event, author_k):
    evt = make_event('hello', tags=[['t', 'test']])

    assert evt.is_valid()
    assert evt.pub_key == author_k.public_key_hex()
    expected_id = hashlib.sha256(json.dumps([0, evt.pub_key, evt.created_at_ticks, evt.kind,
                                             [['t', 'test']], 'hello'],
                                            separators=(',', ':'), ensure_ascii=False).encode('utf-8')).hexdigest()
    assert evt.id == expected_id


def test_tampered_not_valid(make_event):
    evt = make_event('hello')
    data = evt.data()

    data['content'] = 'goodbye'
    assert not Event.load(data).is_valid()
    assert Event.load(data, validate=True) is None

    # the id is fine but it's been signed by someone else
    other = make_event('hello', k=Keys())
    data = evt.data()
    data['sig'] = other.sig
    assert not Event.load(data).is_valid()


def test_load_data(make_event):
    evt = make_event('{"name": "bob"}', kind=Event.KIND_META)
    loaded = Event.load(json.dumps(evt.data()))

    assert loaded.data() == evt.data()
    assert loaded.is_valid()
    assert list(evt.data().keys()) == ['id', 'pubkey', 'created_at', 'kind', 'tags', 'content', 'sig']


def test_load_bad():
    with pytest.raises(ValueError):
        Event.load([])
    with pytest.raises(ValueError, match='missing field pubkey'):
        Event.load({'kind': 1})
    with pytest.raises(ValueError):
        Event.load({'pubkey': 'a' * 64, 'created_at': -1, 'kind': 1, 'tags': [], 'content': ''})
    with pytest.raises(ValueError):
        Event.load({'pubkey': 'a' * 64, 'created_at': 1, 'kind': 1, 'tags': [[1]], 'content': ''})


def test_rumor_has_no_sig():
    rumor = Event(kind=Event.KIND_PRIVATE_DM, content='hi', pub_key='a' * 64, created_at=1700000000)
    data = rumor.rumor_data()
    assert 'sig' not in data
    assert data['id'] == rumor.id
    assert Event.is_event_id(rumor.id)


def test_filter(make_event, author_k):
    evt = make_event('x', kind=1, tags=[['p', 'b' * 64]], created_at=1000)
    pub_k = author_k.public_key_hex()

    assert evt.test({'authors': [pub_k], 'kinds': [1]})
    assert evt.test({'kinds': [1], '#p': ['b' * 64]})
    assert evt.test({'since': 1000, 'until': 1000})

    assert not evt.test({'authors': ['c' * 64]})
    assert not evt.test({'kinds': [0]})
    assert not evt.test({'#p': ['c' * 64]})
    assert not evt.test({'since': 1001})
    assert not evt.test({'until': 999})

    # any of the filters
    assert evt.test([{'kinds': [0]}, {'kinds': [1]}])


def test_sort(make_event):
    old = make_event('old', created_at=100)
    new = make_event('new', created_at=200)

    assert Event.sort([old, new]) == [new, old]
    assert Event.sort([new, old], reverse=False) == [old, new]
