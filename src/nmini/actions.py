"""
    what each command actually does, the cli just picks one of these and hands it the parsed args
"""
from __future__ import annotations
import sys
from typing import Callable
from nmini.util import util_funcs
from nmini.encrypt import Keys, KeyTypeFormat
from nmini.signing import BasicKeySigner
from nmini.giftwrap import GiftWrap
from nmini.event.event import Event
from nmini.event.builders import Metadata, RelayListType, metadata_event, relay_list_event, dm_events
from nmini.event.view import event_info, rumor_info, unwrapped_info
from nmini.client.client import RelayClient
from nmini.client.session import RelaySession, SessionConfig, check_groups, print_err, describe
from nmini.archive import DMArchive
from nmini.exception import ConfigError


class RunContext:
    """
        where we read/write and how relays get connected, tests swap these out
    """
    def __init__(self,
                 stdin=None,
                 out=None,
                 config: SessionConfig = None,
                 client_factory: Callable[[str], RelayClient] = None):
        self.stdin = stdin if stdin is not None else sys.stdin
        self.out = out if out is not None else sys.stdout
        self.config = config if config is not None else SessionConfig()
        self.client_factory = client_factory

    def print(self, the_str: str):
        print(the_str, file=self.out)

    def print_json(self, the_json):
        self.print(util_funcs.json_pretty(the_json))

    async def session(self, relay_groups: list[list[str]]) -> RelaySession:
        return await RelaySession.build(relay_groups,
                                        config=self.config,
                                        client_factory=self.client_factory)


def read_private_key(ctx: RunContext) -> Keys:
    try:
        key_str = util_funcs.read_stdin_pipe(ctx.stdin).strip()
    except ConfigError as ce:
        raise ConfigError('reading private key in stdin') from ce

    try:
        return Keys(priv_k=key_str)
    except ValueError as ve:
        raise ConfigError('parsing private key') from ve


def parse_public_key(key_str: str) -> Keys:
    try:
        return Keys.parse_public(key_str)
    except ValueError as ve:
        raise ConfigError(f'parsing public key {key_str}') from ve


def parse_filter_opts(the_arg: str) -> dict:
    opts = util_funcs.arg_json(the_arg, 'filter options')
    if not isinstance(opts, dict):
        raise ConfigError('parsing filter options') from ValueError('filter options should be a json object')

    ret = {}
    try:
        for c_name in ('since', 'until', 'limit'):
            if c_name in opts:
                ret[c_name] = util_funcs.u64_from_value(opts, c_name)
    except ValueError as ve:
        raise ConfigError('parsing filter options') from ve
    return ret


async def fetch_print(ctx: RunContext, filter: dict, relays: list[str]):
    async with await ctx.session([relays]) as session:
        events = await session.fetch(filter)

    for c_evt in Event.sort(events):
        ctx.print_json(event_info(c_evt))


async def key_convert(args, ctx: RunContext):
    try:
        key_str = util_funcs.read_stdin_pipe(ctx.stdin).strip()
    except ConfigError as ce:
        raise ConfigError('reading key in stdin') from ce

    try:
        the_key = Keys.parse(key_str)
        ctx.print(the_key.convert(KeyTypeFormat(args.format)))
    except ValueError as ve:
        raise ConfigError('converting key') from ve


async def events_send(args, ctx: RunContext):
    relay_groups = [util_funcs.arg_relays(c_arg) for c_arg in args.relays]

    events = []
    for i, c_data in enumerate(util_funcs.read_stdin_json('events', ctx.stdin)):
        try:
            c_evt = Event.load(c_data)
        except ValueError as ve:
            raise ConfigError(f'parsing event {i + 1}') from ve
        if not c_evt.is_valid():
            raise ConfigError(f'parsing event {i + 1}') from ValueError(f'event {c_evt.id} is not signed correctly')
        events.append(c_evt)

    # before we connect anywhere
    check_groups(events, relay_groups)

    async with await ctx.session(relay_groups) as session:
        await session.send(events, relay_groups, out=ctx.out)


async def do_metadata_event(args, ctx: RunContext):
    try:
        metadata = Metadata.from_json(args.metadata)
    except ValueError as ve:
        raise ConfigError('parsing metadata json') from ve

    signer = BasicKeySigner(read_private_key(ctx))
    ctx.print_json((await metadata_event(metadata, signer)).data())


async def do_relay_list_event(args, ctx: RunContext):
    list_type = RelayListType.from_arg(args.relay_type)
    relays = util_funcs.arg_relays(args.relays)

    signer = BasicKeySigner(read_private_key(ctx))
    ctx.print_json((await relay_list_event(list_type, relays, signer)).data())


async def events_fetch(args, ctx: RunContext):
    filter = {
        'authors': [parse_public_key(args.public_key).public_key_hex()],
        'kinds': util_funcs.arg_kinds(args.kinds)
    }
    filter.update(parse_filter_opts(args.filter_opts))

    await fetch_print(ctx, filter, util_funcs.arg_relays(args.relays))


async def metadata_fetch(args, ctx: RunContext):
    await fetch_print(ctx,
                      {
                          'authors': [parse_public_key(args.public_key).public_key_hex()],
                          'kinds': [Event.KIND_META]
                      },
                      util_funcs.arg_relays(args.relays))


async def relay_list_fetch(args, ctx: RunContext):
    if args.relay_type == 'all':
        kinds = [c_type.kind for c_type in RelayListType]
    else:
        kinds = [RelayListType.from_arg(args.relay_type).kind]

    await fetch_print(ctx,
                      {
                          'authors': [parse_public_key(args.public_key).public_key_hex()],
                          'kinds': kinds
                      },
                      util_funcs.arg_relays(args.relays))


async def rumors_info(args, ctx: RunContext):
    for i, c_data in enumerate(util_funcs.read_stdin_json('rumors', ctx.stdin)):
        try:
            c_rumor = Event.load(c_data)
        except ValueError as ve:
            raise ConfigError(f'parsing rumor {i + 1}') from ve
        ctx.print_json(rumor_info(c_rumor))


async def do_dm_events(args, ctx: RunContext):
    to_k = parse_public_key(args.public_key)
    signer = BasicKeySigner(read_private_key(ctx))

    for c_evt in await dm_events(args.message, to_k, signer):
        ctx.print_json(c_evt.data())


async def dm_fetch(args, ctx: RunContext):
    relays = util_funcs.arg_relays(args.relays)
    my_k = read_private_key(ctx)
    my_gift = GiftWrap(BasicKeySigner(my_k))

    async with await ctx.session([relays]) as session:
        wraps = await session.fetch({
            'kinds': [Event.KIND_GIFT_WRAP],
            '#p': [my_k.public_key_hex()]
        })

    unwrapped = []
    for c_evt in wraps:
        try:
            sealed_by, c_rumor = await my_gift.unwrap(c_evt)
            unwrapped.append((c_rumor.created_at_ticks, unwrapped_info(sealed_by, c_rumor)))
        except Exception as e:
            # just this one, the rest are still fine
            print_err(f'{c_evt.id} unwrapping {describe(e)}')

    unwrapped.sort(key=lambda c_un: c_un[0])
    for c_ticks, c_info in unwrapped:
        ctx.print_json(c_info)


async def dm_save(args, ctx: RunContext):
    own_k = parse_public_key(args.public_key)
    msgs = util_funcs.read_stdin_json('messages', ctx.stdin)

    DMArchive(args.dir, own_k).save_all(msgs)
