import sys
import json
import time
import random
from hashlib import md5
from datetime import datetime
from json import JSONDecodeError
from nmini.exception import ConfigError

"""
    just a place to hand any util funcs that don't easily fit anywhere else
"""

# format used whenever we show a created_at to a human, always local time
DATE_FORMAT = '%Y/%m/%d %H:%M:%S'


class util_funcs:

    @staticmethod
    def ticks_as_date(ticks):
        return datetime.fromtimestamp(ticks)

    # reverse of above
    @staticmethod
    def date_as_ticks(dt: datetime):
        return int(dt.timestamp())

    @staticmethod
    def ticks_as_str(ticks: int) -> str:
        try:
            return util_funcs.ticks_as_date(ticks).strftime(DATE_FORMAT)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f'datetime from timestamp seconds {ticks}') from e

    @staticmethod
    def str_tails(the_str, taillen=4, spacer='...'):
        # returns str start...end chars for taillen
        ret = '?...?'

        if the_str:
            if len(the_str) < (taillen*2)+3:
                ret = the_str
            else:
                ret = (f'{the_str[:taillen]}'
                       f'{spacer}'
                       f'{the_str[len(the_str)-taillen:]}')
        return ret

    @staticmethod
    def get_rnd_hex_str(length: int = 4):
        """
        :return: creates a randomish hex str of length used for sub_ids where not given
        max length that'll be returned is 32chars
        """
        ret = str(random.randrange(1, 1000)) + str(time.time())
        ret = md5(ret.encode('utf8')).hexdigest()[:length]
        return ret

    @staticmethod
    def json_pretty(json_value) -> str:
        """
            pretty json with keys kept in the order they were inserted, non ascii left as is
        """
        return json.dumps(json_value, indent=2, ensure_ascii=False)

    @staticmethod
    def u64_from_value(obj: dict, key: str) -> int:
        """
            get key from obj as an unsigned 64 bit int, ValueError if missing or not that
        """
        if key not in obj:
            raise ValueError(f'{key} not present')
        val = obj[key]
        # bool is an int to python but not to json
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            raise ValueError(f'{key} not number')
        if isinstance(val, float):
            if not val.is_integer():
                raise ValueError(f'{key} not u64')
            val = int(val)
        if val < 0 or val >= 2 ** 64:
            raise ValueError(f'{key} not u64')
        return val

    @staticmethod
    def json_stream(the_str: str) -> list:
        """
            parse a str of zero or more concatenated json values, e.g. events piped one after another
            from another command. Any top level array is flattened so [evt, evt] and evt evt are the same
        """
        ret = []
        decoder = json.JSONDecoder()
        pos = 0
        end = len(the_str)
        while True:
            while pos < end and the_str[pos].isspace():
                pos += 1
            if pos >= end:
                break
            val, pos = decoder.raw_decode(the_str, pos)
            if isinstance(val, list):
                ret.extend(val)
            else:
                ret.append(val)
        return ret

    @staticmethod
    def read_stdin_pipe(stdin=None) -> str:
        """
            read everything piped to us, if stdin is the terminal there's nothing piped so error
        """
        if stdin is None:
            stdin = sys.stdin
        if stdin.isatty():
            raise ConfigError('stdin is empty')
        return stdin.read()

    @staticmethod
    def read_stdin_json(what: str, stdin=None) -> list:
        the_str = util_funcs.read_stdin_pipe(stdin)
        try:
            return util_funcs.json_stream(the_str)
        except JSONDecodeError as je:
            raise ConfigError(f'parsing {what} json from stdin') from je

    @staticmethod
    def arg_json(the_arg: str, what: str):
        try:
            return json.loads(the_arg)
        except JSONDecodeError as je:
            raise ConfigError(f'parsing {what}') from je

    @staticmethod
    def arg_relays(the_arg: str) -> list[str]:
        ret = util_funcs.arg_json(the_arg, 'relays array')
        if not isinstance(ret, list) or not all(isinstance(c_url, str) for c_url in ret):
            raise ConfigError('parsing relays array') from ValueError(f'expected array of urls got {the_arg}')
        return ret

    @staticmethod
    def arg_kinds(the_arg: str) -> list[int]:
        ret = util_funcs.arg_json(the_arg, 'kinds array')
        if not isinstance(ret, list):
            raise ConfigError('parsing kinds array') from ValueError(f'expected array of kinds got {the_arg}')
        try:
            return [util_funcs.u64_from_value({'kind': c_kind}, 'kind') for c_kind in ret]
        except ValueError as ve:
            raise ConfigError('parsing kinds array') from ve


def chain_messages(error: BaseException) -> list[str]:
    """
        messages for error and everything that caused it, outermost first
    """
    ret = []
    seen = set()
    c_err = error
    while c_err is not None and id(c_err) not in seen:
        seen.add(id(c_err))
        msg = str(c_err)
        if not msg:
            msg = c_err.__class__.__name__
        ret.append(msg)

        if c_err.__cause__ is not None:
            c_err = c_err.__cause__
        elif not c_err.__suppress_context__:
            c_err = c_err.__context__
        else:
            c_err = None

    return ret
