"""
    nmini action [args...]

    minimal nostr client, anything secret is piped in on stdin and relays are always reached through tor
"""
import sys
import signal
import asyncio
import logging
import argparse
from nmini.util import chain_messages
from nmini.encrypt import KeyTypeFormat
from nmini.exception import ConfigError
from nmini import actions

USAGE_NOTES = """
args:
    json args (relays, kinds, metadata-json, filter-opts) are parsed as json
    relays is an array of ws:// or wss:// urls
    kinds is an array of unsigned ints
    filter-opts is an object with optional since, until (unix seconds) and limit
    metadata-json is an object that is parsed as metadata (nip-01, nip-24)
    private-key and public-key can be hex or bech32, private keys are read from stdin
    relays are connected through the tor socks proxy at 127.0.0.1:9050
"""


class ArgumentParser(argparse.ArgumentParser):
    # so bad args come back to us as an error rather than argparse exiting
    def error(self, message):
        raise ConfigError(message)


def get_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog='nmini',
        description='minimal nostr client',
        epilog=USAGE_NOTES,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    sub_parsers = parser.add_subparsers(dest='action', metavar='action', parser_class=ArgumentParser)

    def add_action(name: str, handler, help: str):
        ret = sub_parsers.add_parser(name, help=help)
        ret.set_defaults(handler=handler)
        return ret

    p = add_action('key-convert', actions.key_convert,
                   '<key> | key-convert [shex|sbech32|phex|pbech32]')
    p.add_argument('format', choices=[c_format.value for c_format in KeyTypeFormat])

    p = add_action('events-send', actions.events_send,
                   '<events> | events-send <relays>... one relays array for all events or one per event')
    p.add_argument('relays', nargs='+')

    p = add_action('metadata-event', actions.do_metadata_event,
                   '<private-key> | metadata-event <metadata-json>')
    p.add_argument('metadata')

    p = add_action('metadata-fetch', actions.metadata_fetch,
                   'metadata-fetch <public-key> <relays>')
    p.add_argument('public_key')
    p.add_argument('relays')

    p = add_action('relay-list-event', actions.do_relay_list_event,
                   '<private-key> | relay-list-event [standard|inbox] <relays>')
    p.add_argument('relay_type', choices=['standard', 'inbox'])
    p.add_argument('relays')

    p = add_action('relay-list-fetch', actions.relay_list_fetch,
                   'relay-list-fetch [all|standard|inbox] <public-key> <relays>')
    p.add_argument('relay_type', choices=['all', 'standard', 'inbox'])
    p.add_argument('public_key')
    p.add_argument('relays')

    p = add_action('events-fetch', actions.events_fetch,
                   'events-fetch <public-key> <kinds> <relays> <filter-opts>')
    p.add_argument('public_key')
    p.add_argument('kinds')
    p.add_argument('relays')
    p.add_argument('filter_opts')

    add_action('rumors-info', actions.rumors_info,
               '<rumors> | rumors-info')

    p = add_action('dm-events', actions.do_dm_events,
                   '<private-key> | dm-events <public-key> <message>')
    p.add_argument('public_key')
    p.add_argument('message')

    p = add_action('dm-fetch', actions.dm_fetch,
                   '<private-key> | dm-fetch <relays>')
    p.add_argument('relays')

    p = add_action('dm-save', actions.dm_save,
                   '<rumors-info> | dm-save <own-public-key> <dir>')
    p.add_argument('public_key')
    p.add_argument('dir')

    return parser


def restore_sigpipe():
    # so piping into head just ends us rather than broken pipe errors on every print
    if hasattr(signal, 'SIGPIPE'):
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)


def print_error(error: BaseException, err=None):
    if err is None:
        err = sys.stderr
    print('error', file=err)
    # innermost cause first
    for c_msg in reversed(chain_messages(error)):
        print(c_msg, file=err)


def run(argv: list[str], ctx: actions.RunContext = None) -> int:
    if ctx is None:
        ctx = actions.RunContext()

    try:
        args = get_parser().parse_args(argv)
        if args.action is None:
            raise ConfigError('insert action')
        asyncio.run(args.handler(args, ctx))
    except Exception as e:
        logging.debug(f'run - {e!r}')
        print_error(e)
        return 1

    return 0


def main():
    logging.getLogger().setLevel(logging.ERROR)
    restore_sigpipe()
    sys.exit(run(sys.argv[1:]))


if __name__ == '__main__':
    main()
