"""
    save unwrapped dms (as printed by dm-fetch/rumors-info) to disk, one dir per person we're talking to

        <base_dir>/<their npub>/<created_at timestamp>-<id>

    files are never overwritten so running over the same messages again changes nothing
"""
from __future__ import annotations
import logging
from pathlib import Path
from nmini.encrypt import Keys
from nmini.event.event import Event
from nmini.exception import ArchiveException
from nmini.util import util_funcs


class DMArchive:

    def __init__(self, base_dir: str | Path, own_k: Keys):
        self._base_dir = Path(base_dir)
        self._own_k = own_k

    def peer_for(self, msg: dict) -> str:
        """
            npub of who msg is with, for anything we wrote it's who we wrote to (first p tag)
        """
        try:
            author = msg['pubkey']['bech32']
        except (KeyError, TypeError) as e:
            raise ArchiveException('pubkey bech32 not present') from e

        try:
            author = Keys.parse_public(author).public_key_bech32()
        except (ValueError, AttributeError) as e:
            raise ArchiveException(f'parsing pubkey {author}') from e

        if author != self._own_k.public_key_bech32():
            return author

        for c_tag in msg.get('tags', []):
            if isinstance(c_tag, list) and len(c_tag) >= 2 and c_tag[0] == 'p':
                try:
                    return Keys.parse_public(c_tag[1]).public_key_bech32()
                except ValueError as ve:
                    raise ArchiveException(f'parsing p tag {c_tag[1]}') from ve

        raise ArchiveException('p tag not found')

    def path_for(self, peer: str, msg: dict) -> Path:
        try:
            ts = util_funcs.u64_from_value(msg['created_at'], 'timestamp')
            msg_id = msg['id']
        except (KeyError, TypeError, ValueError) as e:
            raise ArchiveException('message missing created_at timestamp or id') from e

        if not Event.is_event_id(msg_id):
            raise ArchiveException(f'invalid message id {msg_id}')

        return self._base_dir / peer / f'{ts}-{msg_id}'

    def save(self, msg: dict) -> bool:
        """
            returns True if written, False if we already had it
        """
        peer = self.peer_for(msg)
        msg_file = self.path_for(peer, msg)
        msg_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(msg_file, 'x', encoding='utf-8') as f:
                f.write(util_funcs.json_pretty(msg) + '\n')
        except FileExistsError:
            logging.debug(f'DMArchive::save already have {msg_file}')
            return False

        logging.debug(f'DMArchive::save written {msg_file}')
        return True

    def save_all(self, msgs: list[dict]) -> int:
        ret = 0
        for c_msg in msgs:
            if not isinstance(c_msg, dict):
                raise ArchiveException(f'expected message object got {type(c_msg).__name__}')
            if self.save(c_msg):
                ret += 1
        return ret
