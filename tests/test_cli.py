import io
import json
import asyncio
import pytest
from nmini import cli
from nmini.actions import RunContext
from nmini.client.session import SessionConfig
from nmini.encrypt import Keys
from nmini.signing import BasicKeySigner
from nmini.giftwrap import GiftWrap
from nmini.event.event import Event
from nmini.util import util_funcs

NSEC = 'nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5'
NSEC_HEX = '67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa'


class TTYInput(io.StringIO):
    def isatty(self):
        return True


def make_ctx(stdin: str = '', fake_relays=None) -> RunContext:
    return RunContext(stdin=io.StringIO(stdin),
                      out=io.StringIO(),
                      config=SessionConfig(proxy=None, timeout=0.5),
                      client_factory=fake_relays.make_client if fake_relays else None)


def test_key_convert():
    ctx = make_ctx(NSEC + '\n')
    assert cli.run(['key-convert', 'shex'], ctx) == 0
    assert ctx.out.getvalue() == NSEC_HEX + '\n'

    ctx = make_ctx(NSEC_HEX)
    assert cli.run(['key-convert', 'pbech32'], ctx) == 0
    assert ctx.out.getvalue() == Keys(priv_k=NSEC).public_key_bech32() + '\n'


def test_error_chain(capsys):
    k = Keys()
    ctx = make_ctx(k.public_key_bech32())
    assert cli.run(['key-convert', 'sbech32'], ctx) == 1

    err = capsys.readouterr().err
    # innermost first
    assert err == 'error\ncan not get private key from public key\nconverting key\n'
    assert ctx.out.getvalue() == ''


def test_private_key_errors(capsys):
    ctx = RunContext(stdin=TTYInput(), out=io.StringIO())
    assert cli.run(['metadata-event', '{"name": "bob"}'], ctx) == 1
    assert capsys.readouterr().err == 'error\nstdin is empty\nreading private key in stdin\n'

    ctx = make_ctx(Keys().public_key_bech32())
    assert cli.run(['metadata-event', '{"name": "bob"}'], ctx) == 1
    assert capsys.readouterr().err == 'error\nattempt to use npub as private key\nparsing private key\n'


def test_bad_args(capsys):
    assert cli.run([], make_ctx()) == 1
    assert capsys.readouterr().err == 'error\ninsert action\n'

    assert cli.run(['not-an-action'], make_ctx()) == 1
    assert capsys.readouterr().err.startswith('error\n')

    assert cli.run(['key-convert', 'octal'], make_ctx('x')) == 1
    assert capsys.readouterr().err.startswith('error\n')


def test_help():
    with pytest.raises(SystemExit) as se:
        cli.run(['-h'], make_ctx())
    assert se.value.code == 0


def test_metadata_event():
    ctx = make_ctx(NSEC)
    assert cli.run(['metadata-event', '{"name": "bob", "website": "https://bob.example.com"}'], ctx) == 0

    evts = [Event.load(c_data) for c_data in util_funcs.json_stream(ctx.out.getvalue())]
    assert len(evts) == 1
    assert evts[0].is_valid()
    assert evts[0].pub_key == Keys(priv_k=NSEC).public_key_hex()
    assert json.loads(evts[0].content) == {'name': 'bob', 'website': 'https://bob.example.com'}


def test_metadata_bad_url(capsys):
    assert cli.run(['metadata-event', '{"website": "bob.example.com"}'], make_ctx(NSEC)) == 1
    err = capsys.readouterr().err.splitlines()
    assert err[0] == 'error'
    assert err[-1] == 'parsing metadata json'


def test_relay_list_event():
    ctx = make_ctx(NSEC)
    assert cli.run(['relay-list-event', 'inbox', '["wss://inbox.example.com"]'], ctx) == 0
    data = json.loads(ctx.out.getvalue())
    assert data['kind'] == 10050
    assert data['tags'] == [['relay', 'wss://inbox.example.com']]
    assert Event.load(data).is_valid()


def test_rumors_info():
    k = Keys()
    rumors = [
        Event(kind=Event.KIND_PRIVATE_DM, content='one', pub_key=k.public_key_hex(), created_at=1700000000),
        Event(kind=Event.KIND_PRIVATE_DM, content='{"x": 1}', pub_key=k.public_key_hex(), created_at=1700000001)
    ]
    ctx = make_ctx('\n'.join(json.dumps(c_rumor.rumor_data()) for c_rumor in rumors))
    assert cli.run(['rumors-info'], ctx) == 0

    infos = util_funcs.json_stream(ctx.out.getvalue())
    assert [c_info['id'] for c_info in infos] == [c_rumor.id for c_rumor in rumors]
    assert infos[0]['pubkey']['bech32'] == k.public_key_bech32()
    assert infos[1]['content'] == {'x': 1}


def test_dm_events_fetch(fake_relays, tmp_path):
    sender_k = Keys()
    receiver_k = Keys()
    relays = '["wss://dm.example.com"]'

    ctx = make_ctx(sender_k.private_key_bech32(), fake_relays)
    assert cli.run(['dm-events', receiver_k.public_key_bech32(), 'hello there'], ctx) == 0
    wraps = [Event.load(c_data) for c_data in util_funcs.json_stream(ctx.out.getvalue())]
    assert len(wraps) == 2

    # relay has both wraps, each side only sees theirs
    fake_relays.relay('wss://dm.example.com', events=wraps)

    ctx = make_ctx(receiver_k.private_key_hex(), fake_relays)
    assert cli.run(['dm-fetch', relays], ctx) == 0
    got = util_funcs.json_stream(ctx.out.getvalue())
    assert len(got) == 1
    assert got[0]['content'] == 'hello there'
    assert got[0]['pubkey']['hex'] == sender_k.public_key_hex()
    assert 'warning' not in got[0]

    # and then into the archive
    ctx = make_ctx(ctx.out.getvalue(), fake_relays)
    assert cli.run(['dm-save', receiver_k.public_key_bech32(), str(tmp_path)], ctx) == 0
    assert len(list((tmp_path / sender_k.public_key_bech32()).iterdir())) == 1


def test_dm_fetch_skips_bad_wraps(fake_relays, capsys):
    sender_k = Keys()
    receiver_k = Keys()
    relays = '["wss://dm.example.com"]'

    ctx = make_ctx(sender_k.private_key_bech32(), fake_relays)
    assert cli.run(['dm-events', receiver_k.public_key_bech32(), 'the good one'], ctx) == 0
    good = Event.load(util_funcs.json_stream(ctx.out.getvalue())[0])

    # rumor claims a pubkey that isn't one
    bad_rumor = Event(kind=Event.KIND_PRIVATE_DM, content='bad pubkey', pub_key='zz',
                      tags=[['p', receiver_k.public_key_hex()]], created_at=good.created_at_ticks)
    bad_pubkey = asyncio.run(GiftWrap(BasicKeySigner(sender_k)).wrap_rumor(bad_rumor, receiver_k))

    # tagged for the receiver but nothing they can open
    rnd_k = Keys()
    not_openable = Event(kind=Event.KIND_GIFT_WRAP, content='not encrypted for anyone',
                         tags=[['p', receiver_k.public_key_hex()]], pub_key=rnd_k.public_key_hex())
    not_openable.sign(rnd_k.private_key_hex())

    fake_relays.relay('wss://dm.example.com', events=[bad_pubkey, good, not_openable])

    ctx = make_ctx(receiver_k.private_key_hex(), fake_relays)
    assert cli.run(['dm-fetch', relays], ctx) == 0
    got = util_funcs.json_stream(ctx.out.getvalue())
    assert [c_info['content'] for c_info in got] == ['the good one']

    err = capsys.readouterr().err
    assert f'error: {bad_pubkey.id} unwrapping' in err
    assert f'error: {not_openable.id} unwrapping' in err


def test_events_fetch(fake_relays, make_event, author_k):
    old = make_event('old', created_at=1000)
    new = make_event('new', created_at=2000)
    other_kind = make_event('{"name": "bob"}', kind=Event.KIND_META, created_at=3000)
    fake_relays.relay('wss://a.example.com', events=[old, new, other_kind])

    ctx = make_ctx(fake_relays=fake_relays)
    assert cli.run(['events-fetch', author_k.public_key_bech32(), '[1]', '["wss://a.example.com"]',
                    '{"since": 500}'], ctx) == 0

    got = util_funcs.json_stream(ctx.out.getvalue())
    # newest first
    assert [c_info['content'] for c_info in got] == ['new', 'old']
    assert list(got[0].keys()) == ['kind', 'created_at', 'content', 'tags']


def test_events_fetch_bad_opts(capsys):
    assert cli.run(['events-fetch', Keys().public_key_hex(), '[1]', '["wss://a.example.com"]',
                    '{"since": -1}'], make_ctx()) == 1
    assert capsys.readouterr().err == 'error\nsince not u64\nparsing filter options\n'
