import io
import pytest
from json import JSONDecodeError
from nmini.util import util_funcs, chain_messages
from nmini.exception import ConfigError


class TTYInput(io.StringIO):
    def isatty(self):
        return True


def test_json_stream():
    assert util_funcs.json_stream('') == []
    assert util_funcs.json_stream('  \n ') == []
    assert util_funcs.json_stream('{"a": 1}') == [{'a': 1}]
    # one after another as printed by the other commands
    assert util_funcs.json_stream('{\n "a": 1\n}\n{\n "b": 2\n}\n') == [{'a': 1}, {'b': 2}]
    # arrays are flattened
    assert util_funcs.json_stream('[{"a": 1}, {"b": 2}] {"c": 3}') == [{'a': 1}, {'b': 2}, {'c': 3}]

    with pytest.raises(JSONDecodeError):
        util_funcs.json_stream('{"a": 1} {"b":')


def test_u64_from_value():
    assert util_funcs.u64_from_value({'since': 0}, 'since') == 0
    assert util_funcs.u64_from_value({'since': 1700000000}, 'since') == 1700000000
    assert util_funcs.u64_from_value({'since': 10.0}, 'since') == 10

    with pytest.raises(ValueError, match='since not present'):
        util_funcs.u64_from_value({}, 'since')
    for c_bad in ('10', True, None, [1]):
        with pytest.raises(ValueError, match='since not number'):
            util_funcs.u64_from_value({'since': c_bad}, 'since')
    for c_bad in (-1, 1.5, 2 ** 64):
        with pytest.raises(ValueError, match='since not u64'):
            util_funcs.u64_from_value({'since': c_bad}, 'since')


def test_read_stdin():
    assert util_funcs.read_stdin_pipe(io.StringIO('nsec1abc\n')) == 'nsec1abc\n'
    with pytest.raises(ConfigError, match='stdin is empty'):
        util_funcs.read_stdin_pipe(TTYInput())

    with pytest.raises(ConfigError, match='parsing events json from stdin'):
        util_funcs.read_stdin_json('events', io.StringIO('not json'))


def test_arg_parsing():
    assert util_funcs.arg_relays('["wss://relay.example.com"]') == ['wss://relay.example.com']
    assert util_funcs.arg_kinds('[0, 1, 10002]') == [0, 1, 10002]

    with pytest.raises(ConfigError, match='parsing relays array'):
        util_funcs.arg_relays('wss://relay.example.com')
    with pytest.raises(ConfigError, match='parsing relays array'):
        util_funcs.arg_relays('[1, 2]')
    with pytest.raises(ConfigError, match='parsing kinds array'):
        util_funcs.arg_kinds('[-1]')


def test_str_tails():
    assert util_funcs.str_tails('abc') == 'abc'
    assert util_funcs.str_tails('0123456789abcdef') == '0123...cdef'
    assert util_funcs.str_tails(None) == '?...?'


def test_chain_messages():
    try:
        try:
            try:
                raise ValueError('invalid checksum')
            except ValueError as ve:
                raise ValueError('bad nsec') from ve
        except ValueError as ve:
            raise ConfigError('parsing private key') from ve
    except ConfigError as ce:
        assert chain_messages(ce) == ['parsing private key', 'bad nsec', 'invalid checksum']

    # implicit context is followed too
    try:
        try:
            {}['x']
        except KeyError:
            raise ConfigError('no x')
    except ConfigError as ce:
        assert chain_messages(ce) == ['no x', "'x'"]

    # empty message falls back to the type
    assert chain_messages(TimeoutError()) == ['TimeoutError']


def test_chain_messages_cycle():
    e1 = ValueError('one')
    e2 = ValueError('two')
    e1.__cause__ = e2
    e2.__cause__ = e1
    assert chain_messages(e1) == ['one', 'two']
